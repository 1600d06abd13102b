"""
bracketeer/layout.py - Where every match box and connector goes

Pure geometry for the bracket diagram. Round r sits in column r; its matches
are spread on a stride that doubles every round so each box lines up between
the two boxes that feed it. The front end draws boxes at these positions and
strokes the connector paths as SVG.
"""

from dataclasses import dataclass, field

from .bracket import Bracket


@dataclass
class LayoutSpec:
    match_width: int = 310
    match_height: int = 150
    h_gap: int = 80
    v_gap: int = 25
    champion_width: int = 180
    champion_gap: int = 60
    show_champion: bool = True


@dataclass
class BracketLayout:
    positions: dict[tuple[int, int], tuple[float, float]] = field(default_factory=dict)
    connectors: list[str] = field(default_factory=list)
    champion_position: tuple[float, float] | None = None
    width: float = 0
    height: float = 0

    def to_dict(self) -> dict:
        return {
            "matches": [
                {"round_index": r, "match_index": m, "x": x, "y": y}
                for (r, m), (x, y) in sorted(self.positions.items())
            ],
            "connectors": self.connectors,
            "champion": (
                {"x": self.champion_position[0], "y": self.champion_position[1]}
                if self.champion_position else None
            ),
            "width": self.width,
            "height": self.height,
        }


def compute_layout(bracket: Bracket, spec: LayoutSpec | None = None) -> BracketLayout:
    spec = spec or LayoutSpec()
    layout = BracketLayout()
    total_rounds = len(bracket.rounds)
    if total_rounds == 0:
        return layout

    column = spec.match_width + spec.h_gap
    base_stride = spec.match_height + spec.v_gap
    for r, matches in enumerate(bracket.rounds):
        stride = base_stride * 2 ** r
        for i in range(len(matches)):
            layout.positions[(r, i)] = (r * column, i * stride + stride / 2 - spec.match_height / 2)

    for r in range(total_rounds - 1):
        for i in range(len(bracket.rounds[r])):
            x1, y1 = layout.positions[(r, i)]
            x2, y2 = layout.positions[(r + 1, i // 2)]
            x1 += spec.match_width
            y1 += spec.match_height / 2
            y2 += spec.match_height / 2
            mid = x1 + spec.h_gap / 2
            layout.connectors.append(f"M {_n(x1)} {_n(y1)} H {_n(mid)} V {_n(y2)} H {_n(x2)}")

    layout.width = total_rounds * spec.match_width + (total_rounds - 1) * spec.h_gap
    if spec.show_champion:
        fx, fy = layout.positions[(total_rounds - 1, 0)]
        champion_x = fx + spec.match_width + spec.champion_gap
        centre = fy + spec.match_height / 2
        layout.connectors.append(f"M {_n(fx + spec.match_width)} {_n(centre)} H {_n(champion_x)}")
        layout.champion_position = (champion_x, centre)
        layout.width += spec.champion_gap + spec.champion_width

    lowest = max(y for _, y in layout.positions.values())
    layout.height = lowest + spec.match_height + spec.v_gap * 2
    return layout


def scale_to_fit(layout: BracketLayout, width: float, height: float | None = None) -> float:
    """Scale factor that fits the diagram into a viewport, never enlarging it."""
    if not layout.width:
        return 1.0
    scale = min(width / layout.width, 1.0)
    if height is not None and layout.height:
        scale = min(scale, height / layout.height)
    return scale


def _n(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
