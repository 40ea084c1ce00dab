"""
Draw commands, page emission and the ReportLab rendering surface.
"""

# Standard Library
import dataclasses
import io
import pathlib

# PIP3 modules
import PIL.Image
import reportlab.lib.utils
import reportlab.pdfbase.pdfmetrics
import reportlab.pdfgen.canvas

# local repo modules
import cv_typesetter as cvt
import cv_typesetter.config
import cv_typesetter.errors
import cv_typesetter.metrics


PageConfig = cvt.config.PageConfig
TextMetrics = cvt.metrics.TextMetrics
InternalConsistencyFault = cvt.errors.InternalConsistencyFault

DASH_PATTERN = cvt.config.DASH_PATTERN
BASELINE_EM = cvt.config.BASELINE_EM
PHOTO_PLACEHOLDER_GRAY = cvt.config.PHOTO_PLACEHOLDER_GRAY
mm_to_points = cvt.config.mm_to_points
points_to_mm = cvt.config.points_to_mm


@dataclasses.dataclass(frozen=True)
class DrawText:
	x: float
	y: float
	text: str
	typeface: str
	size: float


@dataclasses.dataclass(frozen=True)
class DrawRect:
	x: float
	y: float
	width: float
	height: float
	line_width: float
	line_style: str


@dataclasses.dataclass(frozen=True)
class DrawLine:
	x1: float
	y1: float
	x2: float
	y2: float
	line_width: float
	line_style: str


@dataclasses.dataclass(frozen=True)
class DrawPolyline:
	points: tuple[tuple[float, float], ...]
	close: bool
	line_width: float
	line_style: str


@dataclasses.dataclass(frozen=True)
class DrawImagePlaceholder:
	x: float
	y: float
	width: float
	height: float
	source: str | None


@dataclasses.dataclass
class ResolvedLine:
	x: float
	y: float
	text: str
	width: float


@dataclasses.dataclass
class ResolvedBox:
	index: int
	kind: str
	page_index: int
	x: float
	y: float
	width: float
	height: float
	lines: list[ResolvedLine] = dataclasses.field(default_factory=list)
	typeface: str = ""
	font_size: float = 0.0
	line_width: float = 0.0
	line_style: str = "solid"
	x2: float = 0.0
	y2: float = 0.0
	points: tuple[tuple[float, float], ...] = ()
	close: bool = False
	source: str | None = None


#============================================
def build_draw_commands(resolved: ResolvedBox) -> list:
	"""
	Convert one resolved directive segment into draw commands.

	Args:
		resolved: ResolvedBox with page coordinates in mm, y measured
			downward from the page top.

	Returns:
		List of draw commands in drawing order.
	"""
	if resolved.kind == "box":
		if resolved.line_style == "none":
			return []
		return [
			DrawRect(
				x=resolved.x,
				y=resolved.y,
				width=resolved.width,
				height=resolved.height,
				line_width=resolved.line_width,
				line_style=resolved.line_style,
			)
		]
	if resolved.kind in ("text", "list", "history"):
		size_mm = points_to_mm(resolved.font_size)
		commands = []
		for line in resolved.lines:
			commands.append(
				DrawText(
					x=line.x,
					y=line.y + size_mm * BASELINE_EM,
					text=line.text,
					typeface=resolved.typeface,
					size=resolved.font_size,
				)
			)
		return commands
	if resolved.kind == "rule":
		if resolved.line_style == "none":
			return []
		return [
			DrawLine(
				x1=resolved.x,
				y1=resolved.y,
				x2=resolved.x2,
				y2=resolved.y2,
				line_width=resolved.line_width,
				line_style=resolved.line_style,
			)
		]
	if resolved.kind == "polyline":
		if resolved.line_style == "none":
			return []
		return [
			DrawPolyline(
				points=resolved.points,
				close=resolved.close,
				line_width=resolved.line_width,
				line_style=resolved.line_style,
			)
		]
	if resolved.kind == "photo":
		return [
			DrawImagePlaceholder(
				x=resolved.x,
				y=resolved.y,
				width=resolved.width,
				height=resolved.height,
				source=resolved.source,
			)
		]
	raise InternalConsistencyFault(f"no draw commands for directive kind '{resolved.kind}'")


#============================================
def describe_command(command: object) -> dict:
	"""
	Describe a draw command as a JSON-ready dict.

	Args:
		command: Draw command dataclass.

	Returns:
		Dict with a "type" key and the command fields.
	"""
	if not dataclasses.is_dataclass(command):
		raise InternalConsistencyFault(f"not a draw command: {command!r}")
	data = {"type": type(command).__name__}
	data.update(dataclasses.asdict(command))
	return data


#============================================
def emit_command(command: object, surface: object) -> None:
	"""
	Send one draw command to a rendering surface.

	Args:
		command: Draw command.
		surface: Object with the draw_* methods of ReportLabSurface.
	"""
	if isinstance(command, DrawText):
		surface.draw_text((command.x, command.y), command.text, command.typeface, command.size)
	elif isinstance(command, DrawRect):
		surface.draw_rect(
			(command.x, command.y),
			(command.width, command.height),
			(command.line_width, command.line_style),
		)
	elif isinstance(command, DrawLine):
		surface.draw_line(
			(command.x1, command.y1),
			(command.x2, command.y2),
			(command.line_width, command.line_style),
		)
	elif isinstance(command, DrawPolyline):
		surface.draw_polyline(command.points, command.close, (command.line_width, command.line_style))
	elif isinstance(command, DrawImagePlaceholder):
		surface.draw_image((command.x, command.y), (command.width, command.height), command.source)
	else:
		raise InternalConsistencyFault(f"unknown draw command {command!r}")


#============================================
def emit_pages(pages: list, surface: object) -> None:
	"""
	Hand sealed page buffers to a rendering surface in page order.

	Args:
		pages: Sealed PageBuffer list from the paginator.
		surface: Rendering surface.
	"""
	for expected_index, page in enumerate(pages):
		if page.page_index != expected_index:
			raise InternalConsistencyFault(
				f"page buffer {page.page_index} emitted at position {expected_index}"
			)
		if not page.sealed:
			raise InternalConsistencyFault(f"page buffer {page.page_index} was never sealed")
		surface.new_page()
		for command in page.commands:
			emit_command(command, surface)


class ReportLabSurface:
	"""
	Rendering surface that draws onto a ReportLab canvas in memory.

	Positions arrive in mm with y measured downward from the page top and
	are converted to PDF points with y measured upward.
	"""

	def __init__(self, page_config: PageConfig, metrics: TextMetrics, title: str = "CV") -> None:
		self.page_config = page_config
		self.metrics = metrics
		self.buffer = io.BytesIO()
		self.page_width = mm_to_points(page_config.width)
		self.page_height = mm_to_points(page_config.height)
		self.pdf = reportlab.pdfgen.canvas.Canvas(
			self.buffer,
			pagesize=(self.page_width, self.page_height),
			invariant=1,
		)
		self.pdf.setTitle(title)
		self.page_open = False
		self.finalized = False
		self.page_count = 0
		self.image_cache: dict[str, reportlab.lib.utils.ImageReader] = {}

	def to_pdf(self, x: float, y: float) -> tuple[float, float]:
		return (mm_to_points(x), self.page_height - mm_to_points(y))

	def set_line_style(self, style: tuple[float, str]) -> None:
		line_width, line_style = style
		self.pdf.setLineWidth(line_width)
		if line_style == "dashed":
			self.pdf.setDash(list(DASH_PATTERN))
		else:
			self.pdf.setDash([])

	def new_page(self) -> None:
		if self.finalized:
			raise InternalConsistencyFault("surface already finalized")
		if self.page_open:
			self.pdf.showPage()
		self.page_open = True
		self.page_count += 1

	def draw_text(self, pos: tuple[float, float], text: str, font_handle: str, size: float) -> None:
		"""
		Draw one line of text, switching fonts between script runs.

		Args:
			pos: Baseline start (x, y) in mm.
			text: Line text.
			font_handle: Typeface alias.
			size: Font size in points.
		"""
		pdf_x, pdf_y = self.to_pdf(pos[0], pos[1])
		self.pdf.setFillColorRGB(0.0, 0.0, 0.0)
		for font_name, run in self.metrics.split_runs(text, font_handle):
			self.pdf.setFont(font_name, size)
			self.pdf.drawString(pdf_x, pdf_y, run)
			pdf_x += reportlab.pdfbase.pdfmetrics.stringWidth(run, font_name, size)

	def draw_rect(self, pos: tuple[float, float], size: tuple[float, float], style: tuple[float, str]) -> None:
		x, y_top = pos
		width, height = size
		pdf_x, pdf_y = self.to_pdf(x, y_top + height)
		self.set_line_style(style)
		self.pdf.setStrokeColorRGB(0.0, 0.0, 0.0)
		self.pdf.rect(pdf_x, pdf_y, mm_to_points(width), mm_to_points(height), stroke=1, fill=0)

	def draw_line(self, start: tuple[float, float], end: tuple[float, float], style: tuple[float, str]) -> None:
		x1, y1 = self.to_pdf(start[0], start[1])
		x2, y2 = self.to_pdf(end[0], end[1])
		self.set_line_style(style)
		self.pdf.setStrokeColorRGB(0.0, 0.0, 0.0)
		self.pdf.line(x1, y1, x2, y2)

	def draw_polyline(
		self,
		points: tuple[tuple[float, float], ...],
		close: bool,
		style: tuple[float, str],
	) -> None:
		"""
		Stroke connected line segments through page points in mm.

		Args:
			points: Vertices in drawing order.
			close: Whether to join the last vertex back to the first.
			style: (line width in points, line style).
		"""
		path = self.pdf.beginPath()
		start_x, start_y = self.to_pdf(points[0][0], points[0][1])
		path.moveTo(start_x, start_y)
		for x, y in points[1:]:
			path.lineTo(*self.to_pdf(x, y))
		if close:
			path.close()
		self.set_line_style(style)
		self.pdf.setStrokeColorRGB(0.0, 0.0, 0.0)
		self.pdf.drawPath(path, stroke=1, fill=0)

	def load_image(self, source: str) -> reportlab.lib.utils.ImageReader:
		if source not in self.image_cache:
			image = PIL.Image.open(pathlib.Path(source))
			image.load()
			self.image_cache[source] = reportlab.lib.utils.ImageReader(image)
		return self.image_cache[source]

	def draw_image(self, pos: tuple[float, float], size: tuple[float, float], handle: str | None) -> None:
		"""
		Draw a photo, or a crossed placeholder frame when there is none.

		Args:
			pos: Top-left (x, y) in mm.
			size: (width, height) in mm.
			handle: Image file path or None.
		"""
		x, y_top = pos
		width, height = size
		pdf_x, pdf_y = self.to_pdf(x, y_top + height)
		pdf_width = mm_to_points(width)
		pdf_height = mm_to_points(height)
		if handle is not None:
			self.pdf.drawImage(
				self.load_image(handle),
				pdf_x,
				pdf_y,
				width=pdf_width,
				height=pdf_height,
				mask=None,
				preserveAspectRatio=True,
				anchor="c",
			)
			return
		self.set_line_style((0.3, "dashed"))
		gray = PHOTO_PLACEHOLDER_GRAY
		self.pdf.setStrokeColorRGB(gray, gray, gray)
		self.pdf.rect(pdf_x, pdf_y, pdf_width, pdf_height, stroke=1, fill=0)
		self.pdf.line(pdf_x, pdf_y, pdf_x + pdf_width, pdf_y + pdf_height)
		self.pdf.line(pdf_x, pdf_y + pdf_height, pdf_x + pdf_width, pdf_y)

	def finalize(self) -> bytes:
		"""
		Close the last page and return the PDF bytes.

		Returns:
			PDF document bytes.
		"""
		if self.finalized:
			raise InternalConsistencyFault("surface already finalized")
		if not self.page_open:
			self.new_page()
		self.pdf.showPage()
		self.pdf.save()
		self.finalized = True
		return self.buffer.getvalue()
