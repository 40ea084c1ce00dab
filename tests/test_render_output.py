import io
import pathlib

import PIL.Image
import pypdf
import pytest

import cv_typesetter.config
import cv_typesetter.errors
import cv_typesetter.paginate
import cv_typesetter.render


render = cv_typesetter.render
InternalConsistencyFault = cv_typesetter.errors.InternalConsistencyFault

STYLE = """
string, 0, 0, 履歴書 CV, font_size=18, typeface=heading
box, 0, 12, 150, 40, line_style=dashed
  string, 2, 2, $name
end
line, 0, 60, 150, 0
photo, 155, 0, 30, 40
new_page
string, 0, 0, 以上
"""


class RecordingSurface:
	"""
	Surface that records calls in order.
	"""

	def __init__(self) -> None:
		self.calls: list[tuple] = []

	def new_page(self) -> None:
		self.calls.append(("new_page",))

	def draw_text(self, pos, text, font_handle, size) -> None:
		self.calls.append(("text", pos, text, font_handle, size))

	def draw_rect(self, pos, size, style) -> None:
		self.calls.append(("rect", pos, size, style))

	def draw_line(self, start, end, style) -> None:
		self.calls.append(("line", start, end, style))

	def draw_polyline(self, points, close, style) -> None:
		self.calls.append(("polyline", points, close, style))

	def draw_image(self, pos, size, handle) -> None:
		self.calls.append(("image", pos, size, handle))


#============================================
def test_build_draw_commands_by_kind() -> None:
	"""
	Resolved segments convert to commands; frameless boxes draw nothing.
	"""
	hidden = render.ResolvedBox(index=1, kind="box", page_index=0, x=0.0, y=0.0, width=10.0, height=10.0, line_style="none")
	assert render.build_draw_commands(hidden) == []

	line = render.ResolvedLine(x=5.0, y=10.0, text="abc", width=3.0)
	text = render.ResolvedBox(
		index=2, kind="text", page_index=0, x=5.0, y=10.0, width=20.0, height=5.0,
		lines=[line], typeface="body", font_size=12.0,
	)
	commands = render.build_draw_commands(text)
	assert commands == [
		render.DrawText(x=5.0, y=10.0 + cv_typesetter.config.points_to_mm(12.0), text="abc", typeface="body", size=12.0)
	]

	bogus = render.ResolvedBox(index=3, kind="new_page", page_index=0, x=0.0, y=0.0, width=0.0, height=0.0)
	with pytest.raises(InternalConsistencyFault):
		render.build_draw_commands(bogus)


#============================================
def test_emit_pages_in_order(run_layout) -> None:
	result = run_layout(STYLE, {"name": "Taro"})
	surface = RecordingSurface()
	render.emit_pages(result.pages, surface)
	kinds = [call[0] for call in surface.calls]
	assert kinds == ["new_page", "text", "rect", "text", "line", "image", "new_page", "text"]
	assert surface.calls[2][3] == (cv_typesetter.config.DEFAULT_LINE_WIDTH, "dashed")
	assert surface.calls[5][3] is None


#============================================
def test_emit_rejects_unsealed_or_misordered_pages() -> None:
	page = cv_typesetter.paginate.PageBuffer(page_index=0)
	with pytest.raises(InternalConsistencyFault):
		render.emit_pages([page], RecordingSurface())
	later = cv_typesetter.paginate.PageBuffer(page_index=1)
	later.seal()
	with pytest.raises(InternalConsistencyFault):
		render.emit_pages([later], RecordingSurface())


#============================================
def test_describe_command() -> None:
	command = render.DrawLine(x1=0.0, y1=1.0, x2=2.0, y2=3.0, line_width=0.5, line_style="solid")
	data = render.describe_command(command)
	assert data["type"] == "DrawLine"
	assert data["y2"] == 3.0


#============================================
def _render_pdf(result, metrics) -> bytes:
	surface = render.ReportLabSurface(result.page_config, metrics)
	render.emit_pages(result.pages, surface)
	return surface.finalize()


#============================================
def test_reportlab_surface_writes_pages(run_layout, metrics) -> None:
	"""
	The PDF has one page per page buffer and is byte stable.
	"""
	result = run_layout(STYLE, {"name": "山田 Taro"})
	pdf_bytes = _render_pdf(result, metrics)
	assert pdf_bytes.startswith(b"%PDF")
	reader = pypdf.PdfReader(io.BytesIO(pdf_bytes))
	assert len(reader.pages) == 2
	width = float(reader.pages[0].mediabox.width)
	assert width == pytest.approx(cv_typesetter.config.mm_to_points(cv_typesetter.config.A4_WIDTH))
	assert _render_pdf(run_layout(STYLE, {"name": "山田 Taro"}), metrics) == pdf_bytes


#============================================
def test_reportlab_surface_draws_photo(run_layout, metrics, tmp_path: pathlib.Path) -> None:
	photo_path = tmp_path / "photo.png"
	PIL.Image.new("RGB", (30, 40), (200, 180, 160)).save(photo_path)
	result = run_layout("photo, 0, 0, 30, 40", {"photo": str(photo_path)})
	assert result.pages[0].commands[0].source == str(photo_path)
	pdf_bytes = _render_pdf(result, metrics)
	reader = pypdf.PdfReader(io.BytesIO(pdf_bytes))
	assert len(reader.pages) == 1


#============================================
def test_finalize_twice_is_a_fault(metrics) -> None:
	surface = render.ReportLabSurface(cv_typesetter.config.PageConfig(), metrics)
	surface.new_page()
	surface.finalize()
	with pytest.raises(InternalConsistencyFault):
		surface.finalize()


#============================================
def test_polyline_reaches_surfaces(run_layout, metrics) -> None:
	"""
	A lines directive becomes one polyline call and renders to the PDF.
	"""
	style = "lines, 4, 20, 20, 30, 0, 0, 30, -30, 0, line_width=1.0\nlines, 2, 0, 60, 10, 0, line_style=none"
	result = run_layout(style, {})
	surface = RecordingSurface()
	render.emit_pages(result.pages, surface)
	assert [call[0] for call in surface.calls] == ["new_page", "polyline"]
	_kind, points, close, style_pair = surface.calls[1]
	margin = cv_typesetter.config.DEFAULT_MARGIN
	assert points[0] == pytest.approx((margin + 20.0, margin + 20.0))
	assert points[3] == pytest.approx((margin + 20.0, margin + 50.0))
	assert close is True
	assert style_pair == (1.0, "solid")
	assert render.describe_command(result.pages[0].commands[0])["type"] == "DrawPolyline"

	pdf_bytes = _render_pdf(result, metrics)
	reader = pypdf.PdfReader(io.BytesIO(pdf_bytes))
	assert len(reader.pages) == 1
