#!/usr/bin/env python3

"""
Pytest coverage for the spatialsbs command line.
"""

# Standard Library
import os
import shutil
import subprocess
import sys

# PIP3 modules
import pytest
import yaml

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)

# local repo modules
from spatialsbslib.core import config

#============================================

CLI_PATH = os.path.join(REPO_ROOT, "spatialsbs_cli.py")

AV_TOOLS = ("ffmpeg", "ffprobe")
MISSING_AV_TOOLS = [tool for tool in AV_TOOLS if shutil.which(tool) is None]
HAVE_AV_TOOLS = len(MISSING_AV_TOOLS) == 0
SKIP_AV_REASON = f"missing tools: {', '.join(MISSING_AV_TOOLS)}"

SAMPLE_PATH = os.environ.get("SPATIALSBS_SAMPLE")
SKIP_SAMPLE_REASON = "set SPATIALSBS_SAMPLE to a spatial video to run"

#============================================

def _run_cli(args: list) -> subprocess.CompletedProcess:
	cmd = [sys.executable, CLI_PATH] + args
	return subprocess.run(cmd, cwd=REPO_ROOT, capture_output=True, text=True)

#============================================

def _read_video_stream(path: str) -> dict:
	cmd = [
		"ffprobe", "-v", "error", "-select_streams", "v:0",
		"-show_entries", "stream=width,height,nb_frames",
		"-of", "default=noprint_wrappers=1",
		path,
	]
	proc = subprocess.run(cmd, capture_output=True, text=True, check=True)
	values = {}
	for line in proc.stdout.splitlines():
		(key, value) = line.split("=", 1)
		values[key] = value
	return values

#============================================

def test_write_default_config(tmp_path) -> None:
	config_path = str(tmp_path / "spatialsbs.yaml")
	proc = _run_cli(["--write-default-config", config_path])
	assert proc.returncode == 0, proc.stderr
	with open(config_path, "r", encoding="utf-8") as handle:
		data = yaml.safe_load(handle)
	assert data == config.default_config()

#============================================

def test_missing_input_reports_error(tmp_path) -> None:
	proc = _run_cli(["-i", str(tmp_path / "missing.mov"), "-o", str(tmp_path / "out.mp4")])
	assert proc.returncode == 1
	assert "Error converting:" in proc.stderr
	assert not os.path.exists(tmp_path / "out.mp4")

#============================================

def test_missing_output_argument(tmp_path) -> None:
	proc = _run_cli(["-i", str(tmp_path / "missing.mov")])
	assert proc.returncode == 1
	assert "-o/--output" in proc.stderr

#============================================

@pytest.mark.skipif(not HAVE_AV_TOOLS, reason=SKIP_AV_REASON)
def test_plain_video_is_rejected(tmp_path) -> None:
	source_path = str(tmp_path / "plain.mp4")
	subprocess.run([
		"ffmpeg", "-y", "-hide_banner", "-loglevel", "error",
		"-f", "lavfi", "-i", "testsrc=size=320x240:rate=30",
		"-t", "1", "-pix_fmt", "yuv420p", source_path,
	], check=True)
	output_path = tmp_path / "out.mp4"
	proc = _run_cli(["-q", "-i", source_path, "-o", str(output_path)])
	assert proc.returncode == 1
	assert "not a spatial video" in proc.stderr
	assert not output_path.exists()

#============================================

@pytest.mark.skipif(not HAVE_AV_TOOLS, reason=SKIP_AV_REASON)
@pytest.mark.skipif(SAMPLE_PATH is None, reason=SKIP_SAMPLE_REASON)
def test_convert_spatial_sample(tmp_path) -> None:
	output_path = str(tmp_path / "sbs.mp4")
	report_path = str(tmp_path / "report.yaml")
	proc = _run_cli(["-q", "-i", SAMPLE_PATH, "-o", output_path, "--report", report_path])
	assert proc.returncode == 0, proc.stderr
	with open(report_path, "r", encoding="utf-8") as handle:
		report = yaml.safe_load(handle)
	assert report["state"] == "done"
	assert report["stats"]["frames_appended"] > 0
	video = _read_video_stream(output_path)
	assert int(video["width"]) > int(video["height"])
