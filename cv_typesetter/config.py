"""
Shared configuration and constants.
"""

# Standard Library
import dataclasses


POINTS_PER_INCH = 72.0
MM_PER_INCH = 25.4

A4_WIDTH = 210.0
A4_HEIGHT = 297.0
DEFAULT_MARGIN = 12.7

DEFAULT_FONT_SIZE = 12.0
DEFAULT_LINE_WIDTH = 0.5
DEFAULT_LINE_STYLE = "solid"
LINE_STYLES = ("solid", "dashed", "none")
DASH_PATTERN = (1.0, 1.0)
DEFAULT_LEADING = 1.2
BASELINE_EM = 1.0
MONTH_SHIFT_EM = 1.0 / 3.0
HISTORY_MONTH_X = 18.0
HISTORY_VALUE_X = 30.0
LAYOUT_EPSILON = 1e-6

BODY_TYPEFACE = "body"
HEADING_TYPEFACE = "heading"
DEFAULT_TYPEFACE = BODY_TYPEFACE
# face name -> (latin font, japanese font)
BUILTIN_FACES = {
	"mincho": ("Times-Roman", "HeiseiMin-W3"),
	"gothic": ("Helvetica", "HeiseiKakuGo-W5"),
}
BUILTIN_ALIASES = {
	"mincho": "mincho",
	"gothic": "gothic",
	BODY_TYPEFACE: "mincho",
	HEADING_TYPEFACE: "gothic",
}
PLACEHOLDER_GLYPH = "〓"
PLACEHOLDER_ADVANCE_EM = 1.0
PHOTO_FIELD = "photo"
PHOTO_PLACEHOLDER_GRAY = 0.6

DEFAULT_DATA_PATH = "data.yaml"
DEFAULT_STYLE_PATH = "style.txt"
DEFAULT_OUTPUT_PATH = "output.pdf"


@dataclasses.dataclass(frozen=True)
class PageConfig:
	width: float = A4_WIDTH
	height: float = A4_HEIGHT
	margin_left: float = DEFAULT_MARGIN
	margin_top: float = DEFAULT_MARGIN
	margin_right: float = DEFAULT_MARGIN
	margin_bottom: float = DEFAULT_MARGIN

	@property
	def usable_width(self) -> float:
		return self.width - self.margin_left - self.margin_right

	@property
	def usable_height(self) -> float:
		return self.height - self.margin_top - self.margin_bottom


@dataclasses.dataclass
class LayoutWarning:
	kind: str
	message: str
	line: int | None = None


#============================================
def mm_to_points(value: float) -> float:
	"""
	Convert millimetres to points.

	Args:
		value: Millimetre value.

	Returns:
		Points value.
	"""
	return value * POINTS_PER_INCH / MM_PER_INCH


#============================================
def points_to_mm(value: float) -> float:
	"""
	Convert points to millimetres.

	Args:
		value: Points value.

	Returns:
		Millimetre value.
	"""
	return value * MM_PER_INCH / POINTS_PER_INCH
