"""
CLI entry points for typesetting a CV from YAML data and a style file.
"""

# Standard Library
import argparse
import json
import pathlib
import sys
import time

# local repo modules
import cv_typesetter as cvt
import cv_typesetter.config
import cv_typesetter.data_lib
import cv_typesetter.errors
import cv_typesetter.layout
import cv_typesetter.metrics
import cv_typesetter.render
import cv_typesetter.style_lib


LayoutResult = cvt.layout.LayoutResult
CvTypesetterError = cvt.errors.CvTypesetterError

DEFAULT_DATA_PATH = cvt.config.DEFAULT_DATA_PATH
DEFAULT_STYLE_PATH = cvt.config.DEFAULT_STYLE_PATH
DEFAULT_OUTPUT_PATH = cvt.config.DEFAULT_OUTPUT_PATH


#============================================
def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
	"""
	Parse command line arguments.

	Args:
		argv: Argument list, or None for sys.argv.

	Returns:
		Parsed argparse namespace.
	"""
	parser = argparse.ArgumentParser(description="Typeset a CV PDF from YAML data and a style file.")

	input_group = parser.add_argument_group("Input")
	input_group.add_argument("-i", "--input", dest="data_path", default=DEFAULT_DATA_PATH, help="CV data YAML path.")
	input_group.add_argument("-s", "--style", dest="style_path", default=DEFAULT_STYLE_PATH, help="Style file path.")

	output_group = parser.add_argument_group("Output")
	output_group.add_argument("-o", "--output", dest="output_path", default=DEFAULT_OUTPUT_PATH, help="Output PDF path.")
	output_group.add_argument("-m", "--manifest", dest="manifest_path", default=None, help="Output layout manifest JSON path.")

	behavior_group = parser.add_argument_group("Behavior")
	behavior_group.add_argument("-q", "--quiet", dest="quiet", action="store_true", help="Only print warnings and errors.")

	parser.set_defaults(quiet=False)

	args = parser.parse_args(argv)
	return args


#============================================
def typeset_document(
	style_path: pathlib.Path,
	data_path: pathlib.Path,
) -> tuple[bytes, LayoutResult]:
	"""
	Parse, lay out and render one CV.

	Nothing is written to disk; the caller decides what to do with the
	bytes once every stage has succeeded.

	Args:
		style_path: Style file path.
		data_path: CV data YAML path.

	Returns:
		Tuple of (PDF bytes, layout result).
	"""
	document = cvt.style_lib.read_style_file(style_path)
	record = cvt.data_lib.load_data_record(data_path)
	metrics = cvt.metrics.TextMetrics(document.typefaces)
	result = cvt.layout.layout_document(document, record, metrics, base_dir=data_path.parent)
	surface = cvt.render.ReportLabSurface(document.page, metrics, title=data_path.stem)
	cvt.render.emit_pages(result.pages, surface)
	return (surface.finalize(), result)


#============================================
def write_manifest(
	manifest_path: pathlib.Path,
	style_path: pathlib.Path,
	data_path: pathlib.Path,
	output_path: pathlib.Path,
	result: LayoutResult,
) -> None:
	"""
	Write a layout manifest JSON file.

	Args:
		manifest_path: Output path.
		style_path: Style file used.
		data_path: Data file used.
		output_path: PDF written.
		result: Layout result.
	"""
	page = result.page_config
	data = {
		"style": str(style_path),
		"data": str(data_path),
		"output": str(output_path),
		"page_size_mm": [page.width, page.height],
		"margins_mm": [page.margin_left, page.margin_top, page.margin_right, page.margin_bottom],
		"pages": len(result.pages),
		"overflow_breaks": result.overflow_breaks,
		"forced_breaks": result.forced_breaks,
		"warnings": [
			{"kind": warning.kind, "message": warning.message, "line": warning.line}
			for warning in result.warnings
		],
		"commands": [
			[cvt.render.describe_command(command) for command in buffer.commands]
			for buffer in result.pages
		],
	}
	manifest_path.parent.mkdir(parents=True, exist_ok=True)
	with manifest_path.open("w", encoding="utf-8") as handle:
		json.dump(data, handle, indent=2, sort_keys=True, ensure_ascii=False)


#============================================
def run_pipeline(args: argparse.Namespace) -> None:
	"""
	Run the full pipeline from YAML data to PDF output.

	Args:
		args: Parsed argparse namespace.
	"""
	style_path = pathlib.Path(args.style_path)
	data_path = pathlib.Path(args.data_path)
	output_path = pathlib.Path(args.output_path)
	if not args.quiet:
		print("CV typesetting pipeline")
		print(f"Style: {style_path}")
		print(f"Data: {data_path}")
		print(f"Output PDF: {output_path}")
		if args.manifest_path:
			print(f"Manifest: {args.manifest_path}")

	start_time = time.perf_counter()
	pdf_bytes, result = typeset_document(style_path, data_path)
	layout_end = time.perf_counter()

	for warning in result.warnings:
		print(f"Warning: {warning.message}")

	output_path.parent.mkdir(parents=True, exist_ok=True)
	output_path.write_bytes(pdf_bytes)
	if args.manifest_path:
		write_manifest(pathlib.Path(args.manifest_path), style_path, data_path, output_path, result)

	if args.quiet:
		return
	print(f"Pages written: {len(result.pages)}")
	print(f"Overflow breaks: {result.overflow_breaks}")
	total_time = time.perf_counter() - start_time
	print(
		"Timing: layout={:.2f}s total={:.2f}s".format(
			layout_end - start_time,
			total_time,
		)
	)
	if args.manifest_path:
		print(f"Manifest written: {args.manifest_path}")


#============================================
def main(argv: list[str] | None = None) -> int:
	"""
	Main entry point.

	Args:
		argv: Argument list, or None for sys.argv.

	Returns:
		Process exit code.
	"""
	args = parse_args(argv)
	try:
		run_pipeline(args)
	except (CvTypesetterError, OSError) as error:
		print(f"Error: {error}", file=sys.stderr)
		return 1
	return 0
