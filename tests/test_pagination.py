import pytest

import cv_typesetter.config
import cv_typesetter.errors
import cv_typesetter.paginate
import cv_typesetter.render


DrawText = cv_typesetter.render.DrawText
DrawRect = cv_typesetter.render.DrawRect
InternalConsistencyFault = cv_typesetter.errors.InternalConsistencyFault
MARGIN = cv_typesetter.config.DEFAULT_MARGIN
USABLE_HEIGHT = cv_typesetter.config.A4_HEIGHT - 2 * MARGIN

SIMPLE_STYLE = """
string, 0, 0, 履歴書, font_size=18, typeface=heading
box, 0, 12, 150, auto, padding=2
  string, 0, 0, $name, font_size=14
  text, 0, 8, 140, $address, font_size=10
end
"""
SIMPLE_DATA = {"name": "山田 太郎", "address": "東京都千代田区千代田1-1"}


#============================================
def _of_type(page, command_type) -> list:
	return [command for command in page.commands if isinstance(command, command_type)]


#============================================
def test_fitting_document_is_one_page(run_layout) -> None:
	"""
	A document that fits produces one sealed page and no overflow.
	"""
	result = run_layout(SIMPLE_STYLE, SIMPLE_DATA)
	assert len(result.pages) == 1
	assert result.pages[0].page_index == 0
	assert result.pages[0].sealed
	assert result.overflow_breaks == 0
	assert result.forced_breaks == 0


#============================================
def test_long_list_splits_between_rows(run_layout, metrics) -> None:
	"""
	A list taller than the page splits and its box continues on the next page.
	"""
	items = [f"entry {index}" for index in range(100)]
	style = "box, 0, 0, 100, auto\n  list, 0, 0, 90, $items, font_size=10\nend"
	result = run_layout(style, {"items": items})
	assert [page.page_index for page in result.pages] == [0, 1]
	assert all(page.sealed for page in result.pages)
	assert result.overflow_breaks == 1

	line_height = metrics.line_height("body", 10.0)
	first_count = int(USABLE_HEIGHT // line_height)
	first_texts = _of_type(result.pages[0], DrawText)
	second_texts = _of_type(result.pages[1], DrawText)
	assert len(first_texts) == first_count
	assert len(first_texts) + len(second_texts) == 100
	assert second_texts[0].text == f"entry {first_count}"
	assert second_texts[0].y == pytest.approx(MARGIN + cv_typesetter.config.points_to_mm(10.0))

	first_rect = _of_type(result.pages[0], DrawRect)[0]
	assert first_rect.height == pytest.approx(USABLE_HEIGHT)
	continuation = result.pages[1].commands[0]
	assert isinstance(continuation, DrawRect)
	assert continuation.y == pytest.approx(MARGIN)
	assert continuation.height == pytest.approx(100 * line_height - first_count * line_height)


#============================================
def test_unsplittable_box_moves_whole(run_layout) -> None:
	style = """
box, 0, 0, 100, 200
end
box, 0, 210, 100, 100, unsplittable
  string, 2, 2, $name
end
"""
	result = run_layout(style, {"name": "Taro"})
	assert len(result.pages) == 2
	assert result.overflow_breaks == 1
	assert len(_of_type(result.pages[0], DrawRect)) == 1
	moved = _of_type(result.pages[1], DrawRect)
	assert len(moved) == 1
	assert moved[0].y == pytest.approx(MARGIN)
	assert moved[0].height == pytest.approx(100.0)
	assert len(_of_type(result.pages[1], DrawText)) == 1


#============================================
def test_splittable_box_frame_continues(run_layout) -> None:
	"""
	Without the flag the box stays and its frame is split across pages.
	"""
	style = """
box, 0, 0, 100, 200
end
box, 0, 210, 100, 100
  string, 2, 2, $name
end
"""
	result = run_layout(style, {"name": "Taro"})
	assert len(result.pages) == 2
	first_rects = _of_type(result.pages[0], DrawRect)
	assert first_rects[1].height == pytest.approx(USABLE_HEIGHT - 210.0)
	assert len(_of_type(result.pages[0], DrawText)) == 1
	second_rects = _of_type(result.pages[1], DrawRect)
	assert len(second_rects) == 1
	assert second_rects[0].height == pytest.approx(310.0 - USABLE_HEIGHT)


#============================================
def test_new_page_starts_fresh_page(run_layout) -> None:
	style = "string, 0, 0, $name\nnew_page\nstring, 0, 5, $name"
	result = run_layout(style, {"name": "Taro"})
	assert len(result.pages) == 2
	assert result.forced_breaks == 1
	assert result.overflow_breaks == 0
	second = _of_type(result.pages[1], DrawText)
	assert len(second) == 1
	assert second[0].y == pytest.approx(MARGIN + 5.0 + cv_typesetter.config.points_to_mm(12.0))


#============================================
def test_missing_required_field_stops_layout(run_layout) -> None:
	with pytest.raises(cv_typesetter.errors.MissingRequiredField):
		run_layout(SIMPLE_STYLE, {"address": "somewhere"})


#============================================
def test_layout_is_repeatable(run_layout) -> None:
	"""
	Laying out the same input twice gives identical commands.
	"""
	first = run_layout(SIMPLE_STYLE, SIMPLE_DATA)
	second = run_layout(SIMPLE_STYLE, SIMPLE_DATA)
	assert [page.commands for page in first.pages] == [page.commands for page in second.pages]


#============================================
def test_paginator_guards_state() -> None:
	paginator = cv_typesetter.paginate.Paginator(cv_typesetter.config.PageConfig())
	paginator.push_frame(cv_typesetter.paginate.Frame(1, 0.0, 10.0, 10.0, 0.5, "solid"))
	with pytest.raises(InternalConsistencyFault):
		paginator.pop_frame(2)
	with pytest.raises(InternalConsistencyFault):
		paginator.finish()
	paginator.pop_frame(1)
	pages = paginator.finish()
	assert [page.page_index for page in pages] == [0]
	with pytest.raises(InternalConsistencyFault):
		paginator.add([])
	with pytest.raises(InternalConsistencyFault):
		pages[0].seal()


#============================================
def test_forced_break_below_cursor() -> None:
	paginator = cv_typesetter.paginate.Paginator(cv_typesetter.config.PageConfig())
	paginator.advance_cursor(400.0)
	origin = paginator.force_break()
	assert origin == pytest.approx(400.0)
	assert paginator.page_index == 1
	assert paginator.to_page_y(origin) == pytest.approx(MARGIN)


#============================================
def test_siblings_after_overflowing_box_keep_offsets(run_layout) -> None:
	"""
	Siblings placed after a box that spilled onto page 2 land below it and
	keep their distance from each other.
	"""
	items = [f"entry {index}" for index in range(100)]
	style = """
box, 0, 0, 100, auto
  list, 0, 0, 90, $items, font_size=10
end
string, 120, 10, AAA
string, 120, 30, BBB
"""
	result = run_layout(style, {"items": items})
	assert len(result.pages) == 2
	second_texts = _of_type(result.pages[1], DrawText)
	by_text = {command.text: command for command in second_texts}
	first = by_text["AAA"]
	second = by_text["BBB"]
	assert second.y - first.y == pytest.approx(20.0)
	last_row = max(command.y for command in second_texts if command.text.startswith("entry"))
	assert first.y > last_row
	assert all(command.text not in ("AAA", "BBB") for command in _of_type(result.pages[0], DrawText))


#============================================
def test_sibling_below_page_origin_is_not_shifted(run_layout) -> None:
	"""
	A sibling that already sits inside the new page window keeps its place.
	"""
	style = """
box, 0, 0, 100, 200
end
box, 0, 210, 100, 100
  string, 2, 2, $name
end
string, 0, 300, $name
"""
	result = run_layout(style, {"name": "Taro"})
	assert len(result.pages) == 2
	moved = _of_type(result.pages[1], DrawText)
	assert len(moved) == 1
	expected = MARGIN + 300.0 - USABLE_HEIGHT + cv_typesetter.config.points_to_mm(12.0)
	assert moved[0].y == pytest.approx(expected)


#============================================
def test_auto_box_grows_around_shifted_children(run_layout) -> None:
	"""
	An auto height box whose later children were pushed below a spilled
	inner box grows so its frame still encloses them.
	"""
	items = [f"entry {index}" for index in range(100)]
	style = """
box, 0, 0, 120, auto
  box, 0, 0, 100, auto
    list, 0, 0, 90, $items, font_size=10
  end
  string, 0, 10, $name
end
"""
	result = run_layout(style, {"items": items, "name": "Taro"})
	assert len(result.pages) == 2
	outer, inner = _of_type(result.pages[1], DrawRect)
	assert outer.width == pytest.approx(120.0)
	assert inner.width == pytest.approx(100.0)
	name = [command for command in _of_type(result.pages[1], DrawText) if command.text == "Taro"][0]
	assert name.y > inner.y + inner.height
	assert outer.y + outer.height > name.y


#============================================
def test_extend_frame_redraws_current_segment() -> None:
	paginator = cv_typesetter.paginate.Paginator(cv_typesetter.config.PageConfig())
	frame = cv_typesetter.paginate.Frame(1, 0.0, 50.0, 20.0, 0.5, "solid", doc_top=0.0, grows=True)
	paginator.push_frame(frame)
	paginator.add_segment(frame, 0.0)
	assert paginator.current.commands[0].height == pytest.approx(20.0)
	paginator.extend_frame(frame, 35.0)
	assert len(paginator.current.commands) == 1
	assert paginator.current.commands[0].height == pytest.approx(35.0)
	# shrinking is ignored
	paginator.extend_frame(frame, 10.0)
	assert paginator.current.commands[0].height == pytest.approx(35.0)


#============================================
def test_polyline_moves_whole_to_next_page(run_layout) -> None:
	style = """
box, 0, 0, 100, 260
end
lines, 3, 10, 262, 20, 0, 0, 15, close=false
"""
	result = run_layout(style, {})
	assert len(result.pages) == 2
	assert result.overflow_breaks == 1
	(polyline,) = _of_type(result.pages[1], cv_typesetter.render.DrawPolyline)
	assert polyline.points[0] == pytest.approx((MARGIN + 10.0, MARGIN))
	assert polyline.points[2] == pytest.approx((MARGIN + 30.0, MARGIN + 15.0))
	assert polyline.close is False
