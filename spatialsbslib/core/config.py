#!/usr/bin/env python3

"""
YAML configuration for spatial to side-by-side conversion.

A config file is a mapping with a version header and a `settings` block.
Missing keys fall back to the defaults below; build_settings() returns a
normalized settings dict with fractions parsed and values range-checked.
"""

# Standard Library
import os

# PIP3 modules
import yaml

# local repo modules
from spatialsbslib.core import utils

#============================================

CONFIG_HEADER_KEY = "spatialsbs"
CONFIG_HEADER_VALUE = 1

SPATIAL_FORMAT_KEY = "com.apple.quicktime.spatial.format-version"
APPEND_POLICIES = ("drop", "retry")

#============================================

def default_config() -> dict:
	"""
	Build the default config dictionary.

	Returns:
		dict: Default config.
	"""
	return {
		CONFIG_HEADER_KEY: CONFIG_HEADER_VALUE,
		"settings": {
			"output": {
				"codec": "h264",
				"crf": 18,
				"preset": "medium",
				"pixel_format": "yuv420p",
				"container": "mp4",
				"time_base": "1/90000",
				"overwrite": True,
				"min_duration_seconds": 0.0,
			},
			"pipeline": {
				"session_start": "1/30",
				"pacing_seconds": 0.003,
				"append_policy": "drop",
				"retry_attempts": 3,
				"retry_backoff_seconds": 0.01,
				"max_pending_frames": 4,
			},
			"render": {
				"backing_scale_factor": 1.0,
			},
			"reader": {
				"left_view": "vpos:left",
				"right_view": "vpos:right",
				"pts_timeout_seconds": 5.0,
			},
			"inspect": {
				"spatial_keys": [
					SPATIAL_FORMAT_KEY,
					f"mdta/{SPATIAL_FORMAT_KEY}",
				],
			},
		},
	}

#============================================

def write_config_file(config_path: str, config: dict) -> None:
	text = f"# {CONFIG_HEADER_KEY} conversion settings\n"
	text += yaml.safe_dump(config, sort_keys=False)
	os.makedirs(os.path.dirname(config_path) or ".", exist_ok=True)
	with open(config_path, "w", encoding="utf-8") as handle:
		handle.write(text)
	return

#============================================

def load_config(config_path: str) -> dict:
	"""
	Load a config file from disk.

	Args:
		config_path: Config file path.

	Returns:
		dict: Parsed config mapping.
	"""
	utils.ensure_file_exists(config_path)
	with open(config_path, "r", encoding="utf-8") as handle:
		data = yaml.safe_load(handle)
	if not isinstance(data, dict):
		raise RuntimeError("config file must be a mapping")
	if data.get(CONFIG_HEADER_KEY) != CONFIG_HEADER_VALUE:
		raise RuntimeError(f"config file must set {CONFIG_HEADER_KEY}: {CONFIG_HEADER_VALUE}")
	return data

#============================================

def coerce_float(value, config_path: str, key_path: str) -> float:
	if isinstance(value, bool):
		raise RuntimeError(f"config {config_path}: {key_path} must be a number")
	if isinstance(value, (int, float)):
		return float(value)
	if isinstance(value, str):
		try:
			return float(value)
		except ValueError:
			raise RuntimeError(f"config {config_path}: {key_path} must be a number: {value!r}")
	raise RuntimeError(f"config {config_path}: {key_path} must be a number")

#============================================

def coerce_int(value, config_path: str, key_path: str) -> int:
	if isinstance(value, bool):
		raise RuntimeError(f"config {config_path}: {key_path} must be an integer")
	if isinstance(value, int):
		return value
	if isinstance(value, float):
		return int(value)
	if isinstance(value, str):
		try:
			return int(float(value))
		except ValueError:
			raise RuntimeError(f"config {config_path}: {key_path} must be an integer: {value!r}")
	raise RuntimeError(f"config {config_path}: {key_path} must be an integer")

#============================================

def coerce_str(value, config_path: str, key_path: str) -> str:
	if isinstance(value, str):
		return value
	raise RuntimeError(f"config {config_path}: {key_path} must be a string")

#============================================

def coerce_bool(value, config_path: str, key_path: str) -> bool:
	if isinstance(value, bool):
		return value
	raise RuntimeError(f"config {config_path}: {key_path} must be true or false")

#============================================

def coerce_fraction(value, config_path: str, key_path: str):
	try:
		return utils.parse_fraction(value, label=key_path)
	except (ValueError, ZeroDivisionError) as error:
		raise RuntimeError(f"config {config_path}: {key_path} must be a fraction: {error}")

#============================================

def build_settings(config: dict = None, config_path: str = "<code defaults>") -> dict:
	"""
	Normalize settings with defaults.

	Args:
		config: Raw config mapping, or None for defaults only.
		config_path: Config file path used in error messages.

	Returns:
		dict: Normalized settings.
	"""
	defaults = default_config()["settings"]
	overrides = {}
	if isinstance(config, dict):
		overrides = config.get("settings", {}) or {}
	if not isinstance(overrides, dict):
		raise RuntimeError(f"config {config_path}: settings must be a mapping")
	output = overrides.get("output", {}) or {}
	pipeline = overrides.get("pipeline", {}) or {}
	render = overrides.get("render", {}) or {}
	reader = overrides.get("reader", {}) or {}
	inspect = overrides.get("inspect", {}) or {}

	codec = coerce_str(output.get("codec", defaults["output"]["codec"]),
		config_path, "settings.output.codec")
	crf = coerce_int(output.get("crf", defaults["output"]["crf"]),
		config_path, "settings.output.crf")
	preset = coerce_str(output.get("preset", defaults["output"]["preset"]),
		config_path, "settings.output.preset")
	pixel_format = coerce_str(output.get("pixel_format", defaults["output"]["pixel_format"]),
		config_path, "settings.output.pixel_format")
	container = coerce_str(output.get("container", defaults["output"]["container"]),
		config_path, "settings.output.container")
	time_base = coerce_fraction(output.get("time_base", defaults["output"]["time_base"]),
		config_path, "settings.output.time_base")
	overwrite = coerce_bool(output.get("overwrite", defaults["output"]["overwrite"]),
		config_path, "settings.output.overwrite")
	min_duration = coerce_float(
		output.get("min_duration_seconds", defaults["output"]["min_duration_seconds"]),
		config_path, "settings.output.min_duration_seconds")

	session_start = coerce_fraction(
		pipeline.get("session_start", defaults["pipeline"]["session_start"]),
		config_path, "settings.pipeline.session_start")
	pacing_seconds = coerce_float(
		pipeline.get("pacing_seconds", defaults["pipeline"]["pacing_seconds"]),
		config_path, "settings.pipeline.pacing_seconds")
	append_policy = coerce_str(
		pipeline.get("append_policy", defaults["pipeline"]["append_policy"]),
		config_path, "settings.pipeline.append_policy")
	retry_attempts = coerce_int(
		pipeline.get("retry_attempts", defaults["pipeline"]["retry_attempts"]),
		config_path, "settings.pipeline.retry_attempts")
	retry_backoff = coerce_float(
		pipeline.get("retry_backoff_seconds", defaults["pipeline"]["retry_backoff_seconds"]),
		config_path, "settings.pipeline.retry_backoff_seconds")
	max_pending = coerce_int(
		pipeline.get("max_pending_frames", defaults["pipeline"]["max_pending_frames"]),
		config_path, "settings.pipeline.max_pending_frames")

	scale_factor = coerce_float(
		render.get("backing_scale_factor", defaults["render"]["backing_scale_factor"]),
		config_path, "settings.render.backing_scale_factor")

	left_view = coerce_str(reader.get("left_view", defaults["reader"]["left_view"]),
		config_path, "settings.reader.left_view")
	right_view = coerce_str(reader.get("right_view", defaults["reader"]["right_view"]),
		config_path, "settings.reader.right_view")
	pts_timeout = coerce_float(
		reader.get("pts_timeout_seconds", defaults["reader"]["pts_timeout_seconds"]),
		config_path, "settings.reader.pts_timeout_seconds")

	spatial_keys = inspect.get("spatial_keys", defaults["inspect"]["spatial_keys"])
	if not isinstance(spatial_keys, list) or len(spatial_keys) == 0:
		raise RuntimeError(f"config {config_path}: settings.inspect.spatial_keys must be a non-empty list")
	spatial_keys = [coerce_str(key, config_path, "settings.inspect.spatial_keys") for key in spatial_keys]

	if crf < 0 or crf > 51:
		raise RuntimeError("output.crf must be 0..51")
	if time_base <= 0:
		raise RuntimeError("output.time_base must be positive")
	if min_duration < 0:
		raise RuntimeError("output.min_duration_seconds must be >= 0")
	if session_start <= 0:
		raise RuntimeError("pipeline.session_start must be positive")
	if pacing_seconds < 0:
		raise RuntimeError("pipeline.pacing_seconds must be >= 0")
	if append_policy not in APPEND_POLICIES:
		raise RuntimeError("pipeline.append_policy must be drop or retry")
	if retry_attempts < 0:
		raise RuntimeError("pipeline.retry_attempts must be >= 0")
	if retry_backoff < 0:
		raise RuntimeError("pipeline.retry_backoff_seconds must be >= 0")
	if max_pending < 1:
		raise RuntimeError("pipeline.max_pending_frames must be >= 1")
	if scale_factor <= 0:
		raise RuntimeError("render.backing_scale_factor must be positive")
	if pts_timeout <= 0:
		raise RuntimeError("reader.pts_timeout_seconds must be positive")
	return {
		"output": {
			"codec": codec,
			"crf": crf,
			"preset": preset,
			"pixel_format": pixel_format,
			"container": container,
			"time_base": time_base,
			"overwrite": overwrite,
			"min_duration_seconds": min_duration,
		},
		"pipeline": {
			"session_start": session_start,
			"pacing_seconds": pacing_seconds,
			"append_policy": append_policy,
			"retry_attempts": retry_attempts,
			"retry_backoff_seconds": retry_backoff,
			"max_pending_frames": max_pending,
		},
		"render": {
			"backing_scale_factor": scale_factor,
		},
		"reader": {
			"left_view": left_view,
			"right_view": right_view,
			"pts_timeout_seconds": pts_timeout,
		},
		"inspect": {
			"spatial_keys": spatial_keys,
		},
	}
