#!/usr/bin/env python3

import os
import shlex
import shutil
import subprocess
import sys
from fractions import Fraction

#============================================

_QUIET_MODE = False
_COMMAND_REPORTER = None

#============================================

def set_quiet_mode(quiet: bool) -> None:
	global _QUIET_MODE
	_QUIET_MODE = bool(quiet)
	return

#============================================

def is_quiet_mode() -> bool:
	return _QUIET_MODE

#============================================

def set_command_reporter(reporter) -> None:
	"""
	Route echoed commands to a callable instead of stdout.

	Args:
		reporter: Callable taking the command string, or None to reset.
	"""
	global _COMMAND_REPORTER
	_COMMAND_REPORTER = reporter
	return

#============================================

def report(message: str) -> None:
	if _QUIET_MODE:
		return
	print(message)
	return

#============================================

def warn(message: str) -> None:
	sys.stderr.write(f"WARNING: {message}\n")
	return

#============================================

def echo_command(cmd: list) -> str:
	showcmd = shlex.join([str(part) for part in cmd])
	if _COMMAND_REPORTER is not None:
		_COMMAND_REPORTER(showcmd)
	elif not _QUIET_MODE:
		print(f"CMD: '{showcmd}'")
	return showcmd

#============================================

def run_process(cmd: list, capture_output: bool = True) -> subprocess.CompletedProcess:
	"""
	Run a subprocess command, raising on a non-zero exit.

	Args:
		cmd: Command list to execute.
		capture_output: Capture stdout and stderr when True.

	Returns:
		subprocess.CompletedProcess: Completed process.
	"""
	showcmd = echo_command(cmd)
	proc = subprocess.run(cmd, capture_output=capture_output, text=True)
	if proc.returncode != 0:
		stderr_text = (proc.stderr or "").strip()
		raise RuntimeError(f"command failed: {showcmd}\n{stderr_text}")
	return proc

#============================================

def check_dependency(cmd_name: str) -> None:
	if shutil.which(cmd_name) is None:
		raise RuntimeError(f"missing dependency: {cmd_name}")
	return

#============================================

def ensure_file_exists(filepath: str) -> None:
	if not os.path.isfile(filepath):
		raise RuntimeError(f"file not found: {filepath}")
	return

#============================================

def parse_fraction(raw_value, label: str = "value") -> Fraction:
	"""
	Parse an int, float, decimal string or "num/den" string into a Fraction.
	"""
	if raw_value is None:
		raise RuntimeError(f"{label} is required")
	if isinstance(raw_value, Fraction):
		return raw_value
	if isinstance(raw_value, bool):
		raise RuntimeError(f"{label} must be a number or fraction string")
	if isinstance(raw_value, int):
		return Fraction(raw_value, 1)
	if isinstance(raw_value, float):
		return Fraction(str(raw_value))
	if isinstance(raw_value, str):
		text = raw_value.strip()
		if '/' in text:
			parts = text.split('/', 1)
			denominator = int(parts[1])
			if denominator == 0:
				raise RuntimeError(f"{label} has a zero denominator")
			return Fraction(int(parts[0]), denominator)
		return Fraction(text)
	raise RuntimeError(f"{label} must be a number or fraction string")

#============================================

def round_half_up_fraction(value: Fraction) -> int:
	numerator = value.numerator
	denominator = value.denominator
	whole = numerator // denominator
	remainder = numerator - (whole * denominator)
	if remainder * 2 >= denominator:
		return whole + 1
	return whole

#============================================

def seconds_to_ticks(seconds: Fraction, time_base: Fraction) -> int:
	return round_half_up_fraction(Fraction(seconds) / time_base)

#============================================

def format_seconds(seconds: Fraction) -> str:
	return f"{float(seconds):.3f}s"
