#!/usr/bin/env python3

# Standard Library
import argparse
import asyncio
import os
import sys

# PIP3 modules
import yaml
from tqdm import tqdm

# local repo modules
from spatialsbslib.core import config
from spatialsbslib.core import utils
from spatialsbslib.core.converter import SpatialVideoConverter

#============================================

def parse_args() -> argparse.Namespace:
	"""
	Parse command-line arguments.

	Returns:
		argparse.Namespace: Parsed CLI args.
	"""
	parser = argparse.ArgumentParser(
		description="Convert a spatial (MV-HEVC stereo) video into a side-by-side video."
	)
	parser.add_argument('-i', '--input', dest='input_file', default=None,
		help='spatial video to convert')
	parser.add_argument('-o', '--output', dest='output_file', default=None,
		help='side-by-side output file')
	parser.add_argument('-c', '--config', dest='config_file', default=None,
		help='optional config YAML path (written with defaults when missing)')
	parser.add_argument('--write-default-config', dest='write_default_config',
		metavar='PATH', default=None, help='write the default config to PATH and exit')
	parser.add_argument('--report', dest='report_file', default=None,
		help='write a YAML report of the run to this path')
	parser.add_argument('--codec', dest='codec', default=None,
		help='override settings.output.codec')
	parser.add_argument('--crf', dest='crf', type=int, default=None,
		help='override settings.output.crf')
	parser.add_argument('--scale-factor', dest='scale_factor', type=float, default=None,
		help='override settings.render.backing_scale_factor')
	parser.add_argument('--append-policy', dest='append_policy', default=None,
		choices=config.APPEND_POLICIES, help='override settings.pipeline.append_policy')
	parser.add_argument('-q', '--quiet', dest='quiet', action='store_true',
		help='suppress progress and command echo')
	parser.set_defaults(quiet=False)
	args = parser.parse_args()
	return args

#============================================

def resolve_config(args: argparse.Namespace) -> tuple:
	"""
	Load the config file (or defaults) and apply CLI overrides.

	Returns:
		tuple: (raw config dict, config path used in error messages)
	"""
	raw = config.default_config()
	config_path = "<code defaults>"
	if args.config_file is not None:
		config_path = args.config_file
		if not os.path.exists(config_path):
			config.write_config_file(config_path, raw)
			utils.report(f"Wrote default config: {config_path}")
		raw = config.load_config(config_path)
	settings = raw.setdefault("settings", {})
	if args.codec is not None:
		settings.setdefault("output", {})["codec"] = args.codec
	if args.crf is not None:
		settings.setdefault("output", {})["crf"] = args.crf
	if args.scale_factor is not None:
		settings.setdefault("render", {})["backing_scale_factor"] = args.scale_factor
	if args.append_policy is not None:
		settings.setdefault("pipeline", {})["append_policy"] = args.append_policy
	return (raw, config_path)

#============================================

def build_report(args: argparse.Namespace, config_path: str, converter, result) -> dict:
	stats = dict(converter.stats)
	if stats.get("last_timestamp") is not None:
		stats["last_timestamp"] = float(stats["last_timestamp"])
	report = {
		"spatialsbs": 1,
		"input": os.path.abspath(args.input_file),
		"output": os.path.abspath(args.output_file),
		"config_path": config_path,
		"state": converter.state.value,
		"stats": stats,
		"result": None,
	}
	if result is not None:
		report["result"] = {
			"duration_seconds": float(result.asset.duration_seconds),
			"frame_count": int(result.asset.frame_count),
		}
	return report

#============================================

def write_report(report_path: str, report: dict) -> None:
	os.makedirs(os.path.dirname(report_path) or ".", exist_ok=True)
	with open(report_path, "w", encoding="utf-8") as handle:
		handle.write(yaml.safe_dump(report, sort_keys=True))
	return

#============================================

def run_conversion(args: argparse.Namespace) -> None:
	utils.ensure_file_exists(args.input_file)
	utils.check_dependency("ffmpeg")
	utils.check_dependency("ffprobe")
	(raw, config_path) = resolve_config(args)
	settings = config.build_settings(raw, config_path)
	converter = SpatialVideoConverter(settings)
	progress_bar = tqdm(total=1000, unit="permille", disable=args.quiet)

	def on_progress(value: float) -> None:
		target = int(value * 1000)
		if target > progress_bar.n:
			progress_bar.update(target - progress_bar.n)

	result = None
	try:
		result = asyncio.run(converter.convert(args.input_file, args.output_file,
			progress=on_progress))
	finally:
		progress_bar.close()
		if args.report_file is not None:
			write_report(args.report_file, build_report(args, config_path, converter, result))
	utils.report(f"Wrote {result.asset.path} ({result.asset.frame_count} frames, "
		f"{result.asset.duration_seconds:.3f}s)")
	return

#============================================

def main() -> None:
	args = parse_args()
	utils.set_quiet_mode(args.quiet)
	if args.write_default_config is not None:
		config.write_config_file(args.write_default_config, config.default_config())
		print(f"Wrote default config: {args.write_default_config}")
		return
	if args.input_file is None or args.output_file is None:
		sys.stderr.write("Error converting: -i/--input and -o/--output are required\n")
		sys.exit(1)
	try:
		run_conversion(args)
	except KeyboardInterrupt:
		sys.stderr.write("Error converting: interrupted\n")
		sys.exit(1)
	except RuntimeError as error:
		sys.stderr.write(f"Error converting: {error}\n")
		sys.exit(1)


if __name__ == '__main__':
	main()
