"""Dump tables of a tuning: plain text, JSON and Excel.

Every mapped key of a Tuning becomes one DumpRow holding its scale degree,
frequency, nearest 12-TET MIDI note and note name, the deviation from that
note in cents and the nearest odd-limit fraction of the key's ratio to the
reference.

Output Formats:
- Text: aligned columns, one line per key (print or save)
- JSON: tuning metadata plus the rows, for downstream tools
- Excel: one formatted worksheet per dump with a reference-key highlight
  (openpyxl, imported lazily)

Precision is an explicit parameter (default consts.DEFAULT_DUMP_PRECISION).
"""

import json
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

import consts
import utils
from approx import NearestFraction, nearest_fraction
from tuning import Tuning

logger = logging.getLogger(__name__)

DUMP_HEADERS = ["Key", "Degree", "Hz", "MIDI", "Note", "Deviation (c)", "Nearest fraction"]


@dataclass(frozen=True)
class DumpRow:
    key: int
    degree: int
    frequency: float
    midi_note: int
    note_name: str
    deviation: float
    fraction: NearestFraction


def dump_rows(tuning: Tuning, keys: Optional[Iterable[int]] = None,
              odd_limit: int = consts.DEFAULT_ODD_LIMIT) -> List[DumpRow]:
    """Rows for keys (default: every mapped key)."""
    rows = []
    for key in (tuning.keys() if keys is None else keys):
        frequency = tuning.frequency_of(key)
        semitones = utils.convert_hz_to_midi(frequency)
        midi_note = round(semitones)
        rows.append(DumpRow(
            key=key,
            degree=tuning.degree_of(key),
            frequency=frequency,
            midi_note=midi_note,
            note_name=utils.midi_to_note_name_12tet(midi_note),
            deviation=(semitones - midi_note) * consts.CENTS_PER_SEMITONE,
            fraction=nearest_fraction(tuning.pitch_of(key), odd_limit),
        ))
    return rows


def _format_fraction(fraction: NearestFraction) -> str:
    return f"{fraction.numerator}/{fraction.denominator} [{fraction.num_octaves:+d}]"


def format_dump(rows: List[DumpRow], precision: int = consts.DEFAULT_DUMP_PRECISION) -> List[str]:
    """Aligned text lines of the dump (header first)."""
    table = [[
        str(r.key),
        str(r.degree),
        f"{r.frequency:.{precision}f}",
        str(r.midi_note),
        r.note_name,
        f"{r.deviation:+.{precision}f}",
        _format_fraction(r.fraction),
    ] for r in rows]
    return utils.format_aligned_table(DUMP_HEADERS, table)


def dump_json(tuning: Tuning, rows: Optional[List[DumpRow]] = None,
              precision: int = consts.DEFAULT_DUMP_PRECISION) -> str:
    """JSON document with tuning metadata and rows."""
    rows = dump_rows(tuning) if rows is None else rows
    document = {
        "scale": {
            "name": tuning.scale.name,
            "kind": tuning.scale.kind.value if tuning.scale.kind else None,
            "size": tuning.scale.size,
            "period_cents": round(tuning.scale.period.cents, precision),
        },
        "reference": {
            "key": tuning.mapping.reference_key,
            "frequency": tuning.mapping.reference_frequency,
        },
        "keys": [{
            "key": r.key,
            "degree": r.degree,
            "frequency": round(r.frequency, precision),
            "midi_note": r.midi_note,
            "note_name": r.note_name,
            "deviation_cents": round(r.deviation, precision),
            "nearest_fraction": {
                "numerator": r.fraction.numerator,
                "denominator": r.fraction.denominator,
                "octaves": r.fraction.num_octaves,
                "deviation_cents": round(r.fraction.deviation, precision),
            },
        } for r in rows],
    }
    return json.dumps(document, indent=2)


def export_dump_excel(xlsx_path: str, tuning: Tuning, rows: Optional[List[DumpRow]] = None) -> bool:
    """Write the dump to an Excel workbook; returns False when openpyxl is unavailable or saving fails."""
    openpyxl, _ = utils.lazy_import_openpyxl()
    if not openpyxl:
        logger.error("openpyxl not available for %s: Excel export skipped", xlsx_path)
        return False

    rows = dump_rows(tuning) if rows is None else rows
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Tuning"
    utils.setup_excel_worksheet_formatting(ws, DUMP_HEADERS)

    reference_fill = utils.get_excel_color_fills()['reference']
    for row_idx, r in enumerate(rows, start=2):
        ws.cell(row=row_idx, column=1, value=r.key)
        ws.cell(row=row_idx, column=2, value=r.degree)
        ws.cell(row=row_idx, column=3, value=float(r.frequency))
        ws.cell(row=row_idx, column=4, value=r.midi_note)
        ws.cell(row=row_idx, column=5, value=r.note_name)
        ws.cell(row=row_idx, column=6, value=float(r.deviation))
        ws.cell(row=row_idx, column=7, value=_format_fraction(r.fraction))
        if r.key == tuning.mapping.reference_key:
            for col in range(1, len(DUMP_HEADERS) + 1):
                ws.cell(row=row_idx, column=col).fill = reference_fill

    for col_letter, width in zip("ABCDEFG", (8, 8, 14, 8, 8, 14, 18)):
        ws.column_dimensions[col_letter].width = width

    try:
        wb.save(xlsx_path)
    except OSError as e:
        logger.error("Write error %s: %s", xlsx_path, e)
        return False
    logger.info("Exported: %s", xlsx_path)
    return True
