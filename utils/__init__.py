"""Shared utilities for the MICROTUNE packages and command line.

Logging:
- One call to configure the root logger for console and optional log file
- Python warnings (TuningWarning and friends) routed through logging

Musical Note Processing:
- Note name parsing with sharps and flats (C#4, Bb3, A4)
- MIDI note number to 12-TET name and frequency conversion
- Fractional MIDI note number for arbitrary frequencies

Text Output:
- Aligned plain-text tables
- Safe file writing with logged success or failure

Excel Support:
- Lazy import of openpyxl so the core never requires it
- Standard header fills, borders and worksheet formatting
"""

import argparse
import logging
import math
import sys
import warnings
from typing import List, Optional, Union

import consts

logger = logging.getLogger(__name__)

# --- Logging system ---

def setup_logging(log_file: Optional[str] = None, level: int = logging.WARNING) -> None:
    """Setup console (and optional file) logging and capture Python warnings."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )

    # warnings.warn(...) ends up in the 'py.warnings' logger
    logging.captureWarnings(True)
    warnings.simplefilter('default')


def print_banner(stream=None) -> None:
    """Print program name, version, author and license."""
    print(f"{consts.__program_name__}  |  Version: {consts.__version__}  |  "
          f"Author: {consts.__author__}  |  License: {consts.__license__}", file=stream or sys.stderr)


# --- Note names and MIDI ---

NOTE_NAMES_SHARP = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]


def convert_note_name_to_midi(note_name: str) -> int:
    """Convert note name to MIDI value. Supports # and b."""
    note_map = {'C': 0, 'D': 2, 'E': 4, 'F': 5, 'G': 7, 'A': 9, 'B': 11}
    s = note_name.strip()
    if not s:
        raise ValueError("Empty note name")

    note = s[0].upper()
    if note not in note_map:
        raise ValueError(f"Invalid note name: {note_name}")

    alteration = 0
    idx = 1

    # handle # and b
    if idx < len(s):
        if s[idx] == '#':
            alteration += 1
            idx += 1
        elif s[idx] == 'b':
            alteration -= 1
            idx += 1

    try:
        octave = int(s[idx:])
    except ValueError:
        raise ValueError(f"Invalid octave format in: {note_name}")

    midi_value = (octave + 1) * consts.SEMITONES_PER_OCTAVE + note_map[note] + alteration

    if not (consts.MIDI_MIN <= midi_value <= consts.MIDI_MAX):
        raise ValueError(f"MIDI note out of range: {midi_value}")

    return midi_value


def note_name_or_number(value: str) -> int:
    """argparse type: MIDI number or note name."""
    try:
        return int(value)
    except ValueError:
        try:
            return convert_note_name_to_midi(value)
        except ValueError as e:
            raise argparse.ArgumentTypeError(str(e))


def convert_midi_to_hz(midi_value: Union[int, float], diapason_hz: float = consts.DEFAULT_DIAPASON) -> float:
    """Convert MIDI value to frequency in Hz (12-TET)."""
    return diapason_hz * (2 ** ((float(midi_value) - consts.MIDI_A4) / consts.SEMITONES_PER_OCTAVE))


def convert_hz_to_midi(freq_hz: float, diapason_hz: float = consts.DEFAULT_DIAPASON) -> float:
    """Fractional MIDI note number of a frequency (69.0 = diapason)."""
    if freq_hz <= 0:
        raise ValueError(f"Frequency must be positive: {freq_hz}")
    return consts.MIDI_A4 + consts.SEMITONES_PER_OCTAVE * math.log2(freq_hz / diapason_hz)


def midi_to_note_name_12tet(midi_value: int) -> str:
    """Convert a MIDI value to a 12-TET note name with octave, e.g. A4, C#3."""
    m = int(midi_value)
    name = NOTE_NAMES_SHARP[m % consts.SEMITONES_PER_OCTAVE]
    octave = (m // consts.SEMITONES_PER_OCTAVE) - 1
    return f"{name}{octave}"


# --- Text output ---

def format_aligned_table(headers: List[str], rows: List[List[str]]) -> List[str]:
    """Format a table with aligned columns.

    Args:
        headers: List of column headers
        rows: List of rows, where each row is a list of strings

    Returns:
        List of formatted lines ready for printing
    """
    if not headers or not rows:
        return []

    widths = [len(h) for h in headers]
    for row in rows:
        for col_idx, cell in enumerate(row):
            if col_idx < len(widths):
                widths[col_idx] = max(widths[col_idx], len(str(cell)))

    def format_row(row_data):
        return "  ".join(str(row_data[i]).ljust(widths[i]) for i in range(min(len(row_data), len(widths)))).rstrip()

    lines = [format_row(headers)]
    for row in rows:
        lines.append(format_row(row))
    return lines


def safe_file_write(file_path: str, content: Union[str, bytes], encoding: str = "utf-8") -> bool:
    """Write text or bytes to file_path; log and report failure instead of raising."""
    try:
        if isinstance(content, bytes):
            with open(file_path, "wb") as f:
                f.write(content)
        else:
            with open(file_path, "w", encoding=encoding) as f:
                f.write(content)
        logger.info("Exported: %s", file_path)
        return True
    except OSError as e:
        logger.error("Write error %s: %s", file_path, e)
        return False


# --- Excel support ---

def lazy_import_openpyxl():
    """Lazy import openpyxl; returns (None, None) when it is not installed."""
    try:
        import importlib
        openpyxl = importlib.import_module('openpyxl')
        styles = importlib.import_module('openpyxl.styles')
        return openpyxl, styles
    except ImportError:
        return None, None


def get_excel_color_fills():
    """Standard fills for header and highlighted rows."""
    from openpyxl.styles import PatternFill
    return {
        'header': PatternFill(start_color="DDDDDD", end_color="DDDDDD", fill_type="solid"),
        'reference': PatternFill(start_color="FFCCE5FF", end_color="FFCCE5FF", fill_type="solid"),
        'unmapped': PatternFill(start_color="FFEEEEEE", end_color="FFEEEEEE", fill_type="solid"),
    }


def get_excel_borders():
    """Get standard Excel border styles."""
    from openpyxl.styles import Border, Side
    thin_side = Side(style="thin", color="FFB0B0B0")
    return {
        'thin': Border(left=thin_side, right=thin_side, top=thin_side, bottom=thin_side)
    }


def setup_excel_worksheet_formatting(ws, headers: List[str]) -> None:
    """Append bold, filled headers and freeze the header row."""
    from openpyxl.styles import Font

    ws.append(headers)
    header_font = Font(bold=True)
    header_fill = get_excel_color_fills()['header']
    border = get_excel_borders()['thin']
    for cell in ws[1]:
        cell.font = header_font
        cell.fill = header_fill
        cell.border = border
    ws.freeze_panes = "A2"
