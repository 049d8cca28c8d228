#!/usr/bin/env python3
"""MICROTUNE - microtonal tuning engine.

Build scales and keyboard mappings, inspect them and export Scala files,
MIDI Tuning Standard sysex and pitch-bend retuning plans.
"""

import argparse
import logging
import sys
from typing import List, Optional

import approx
import consts
import mts
import retune
import scala
import tables
import utils
from errors import MicrotuneError
from pitch import Ratio
from scales import EqualDivision, ExplicitScale, HarmonicSeries, Rank2Temperament, Scale
from tuning import KeyboardMapping, ReferencePitch, Tuning, search_layout

logger = logging.getLogger("microtune")


def _ratio_arg(value: str) -> Ratio:
    try:
        return Ratio.parse(value)
    except MicrotuneError as e:
        raise argparse.ArgumentTypeError(str(e))


def _reference_arg(value: str) -> ReferencePitch:
    try:
        return ReferencePitch.parse(value)
    except MicrotuneError as e:
        raise argparse.ArgumentTypeError(str(e))


def _data_byte_arg(value: str) -> int:
    number = int(value, 0)
    if not 0 <= number <= consts.DATA_BYTE_MASK:
        raise argparse.ArgumentTypeError(f"{value} is not in 0..127")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="microtune",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description=(
            "MICROTUNE - Microtonal scales, keyboard mappings, Scala and MTS export\n"
            "\n"
            "Build a scale (equal division, rank-2 temperament, harmonic series,\n"
            "custom ratios or a .scl file), map it onto MIDI keys and dump or\n"
            "export the resulting tuning.\n"
        ),
        epilog=(
            "RATIOS:\n"
            "  3/2, 5, 1.5           ratios\n"
            "  701.955c              cents\n"
            "  1:12:2                one step of 12 equal divisions of 2/1\n\n"

            "EXAMPLES:\n"
            "  microtune.py --et 31 --layout 12 --dump\n"
            "  microtune.py --rank2 696.578c 5 6 --ref 69@432Hz --export-scl --export-kbm meantone\n"
            "  microtune.py --harm 8 --mts out_harm\n"
            "  microtune.py --scl qcm.scl --kbm qcm.kbm --bulk-dump \"QC meantone\" qcm\n"
            "  microtune.py --approx 1:12:2\n"
        )
    )

    grp_base = parser.add_argument_group("Base")
    grp_scale = parser.add_argument_group("Scale source")
    grp_map = parser.add_argument_group("Keyboard mapping")
    grp_out = parser.add_argument_group("Output")
    grp_mts = parser.add_argument_group("MIDI Tuning Standard")

    grp_base.add_argument("--version", action="version", version=f"%(prog)s {consts.__version__}")
    grp_base.add_argument("-v", "--verbose", action="store_true", help="Log debug messages")
    grp_base.add_argument("--log-file", default=None, help="Also write log messages to this file")

    source = grp_scale.add_mutually_exclusive_group()
    source.add_argument("--et", nargs="+", metavar="N [PERIOD]",
                        help="N equal divisions of PERIOD (default 2/1), e.g. --et 13 3")
    source.add_argument("--rank2", nargs="+", metavar="GEN POS [NEG]",
                        help="Rank-2 temperament: generator stacked POS times up and NEG times down")
    source.add_argument("--harm", nargs="+", type=int, metavar="LOWEST [N]",
                        help="N harmonics starting at LOWEST (default N = LOWEST)")
    source.add_argument("--cust", nargs="+", type=_ratio_arg, metavar="RATIO",
                        help="Custom scale in Scala order: pitches above 1/1, period last")
    source.add_argument("--scl", metavar="FILE.scl", help="Load a Scala scale file")
    grp_scale.add_argument("--subharm", action="store_true", help="With --harm: use the subharmonic series")
    grp_scale.add_argument("--period", type=_ratio_arg, default=Ratio(2),
                           help="Period of --rank2 (default 2/1)")
    grp_scale.add_argument("--name", default=None, help="Scale name / .scl description")

    grp_map.add_argument("--ref", type=_reference_arg, default=ReferencePitch(consts.MIDI_A4, consts.DEFAULT_DIAPASON),
                         help="Reference pitch KEY@FREQ, e.g. 69@440Hz, A4@432, 62 (default 69@440Hz)")
    grp_map.add_argument("--root", type=utils.note_name_or_number, default=None,
                         help="Key playing scale degree 0 (default: the reference key)")
    grp_map.add_argument("--kbm", metavar="FILE.kbm", help="Load a Scala keyboard mapping")
    grp_map.add_argument("--layout", type=int, metavar="KEYS_PER_PERIOD", default=None,
                         help="Generator-based layout with this many keys per period")
    grp_map.add_argument("--generator-steps", type=int, default=None,
                         help="With --layout and --et: generator size in steps (default: best fifth)")
    grp_map.add_argument("--key-range", nargs=2, type=int, metavar=("FIRST", "LAST"),
                         default=(consts.MIDI_MIN, consts.MIDI_MAX), help="Mapped key range (default 0 127)")

    grp_out.add_argument("--export-scl", action="store_true", help="Export OUTPUT.scl")
    grp_out.add_argument("--export-kbm", action="store_true", help="Export OUTPUT.kbm")
    grp_out.add_argument("--cents-precision", type=int, default=consts.DEFAULT_CENTS_PRECISION,
                         help=f"Decimals of cents values in .scl output (default {consts.DEFAULT_CENTS_PRECISION})")
    grp_out.add_argument("--dump", action="store_true", help="Print the key/frequency table")
    grp_out.add_argument("--jdump", action="store_true", help="Print the key/frequency table as JSON")
    grp_out.add_argument("--xlsx", action="store_true", help="Export the table to OUTPUT.xlsx")
    grp_out.add_argument("--odd-limit", type=int, default=consts.DEFAULT_ODD_LIMIT,
                         help=f"Odd limit of the nearest-fraction column (default {consts.DEFAULT_ODD_LIMIT})")
    grp_out.add_argument("--approx", type=_ratio_arg, metavar="RATIO", default=None,
                         help="Print rational and equal-step approximations of RATIO")
    grp_out.add_argument("--max-denominator", type=int, default=consts.DEFAULT_MAX_DENOMINATOR,
                         help=f"Denominator bound of --approx (default {consts.DEFAULT_MAX_DENOMINATOR})")
    grp_out.add_argument("--plan-aot", type=int, metavar="CHANNELS", default=None,
                         help="Print an ahead-of-time pitch-bend channel plan for CHANNELS channels")
    grp_out.add_argument("--bend-range", type=float, default=consts.DEFAULT_PITCH_BEND_RANGE,
                         help=f"Pitch-bend range in semitones (default {consts.DEFAULT_PITCH_BEND_RANGE})")
    grp_out.add_argument("output_file", nargs="?", default="out", help="Output base name (default: out)")

    grp_mts.add_argument("--mts", action="store_true", help="Single Note Tuning Change to OUTPUT_sntc.syx")
    grp_mts.add_argument("--octave-mts", type=int, choices=[1, 2], default=None,
                         help="Scale/Octave Tuning (1- or 2-byte format) to OUTPUT_octave.syx")
    grp_mts.add_argument("--bulk-dump", metavar="NAME", default=None,
                         help="Bulk Tuning Dump named NAME to OUTPUT_bulk.syx")
    grp_mts.add_argument("--device-id", type=_data_byte_arg, default=consts.DEVICE_ID_BROADCAST,
                         help="Sysex device ID (default 0x7F = all devices)")
    grp_mts.add_argument("--tuning-program", type=_data_byte_arg, default=0, help="Tuning program number")
    grp_mts.add_argument("--bank", type=_data_byte_arg, default=None, help="Tuning bank (bank variant of SNTC)")
    grp_mts.add_argument("--range-policy", choices=[p.value for p in mts.RangePolicy],
                         default=mts.RangePolicy.FAIL.value, help="Out-of-range pitches: fail, clamp or skip")
    grp_mts.add_argument("--checksum", action="store_true",
                         help="Append the checksum byte to SNTC and scale/octave messages")
    return parser


def build_scale(args: argparse.Namespace) -> Scale:
    """Scale selected on the command line (12-EDO when none is given)."""
    name = args.name or ""
    if args.et:
        if len(args.et) > 2:
            raise MicrotuneError("--et takes N and an optional PERIOD")
        try:
            divisions = int(args.et[0])
        except ValueError:
            raise MicrotuneError(f"--et: {args.et[0]!r} is not an integer")
        period = Ratio.parse(args.et[1]) if len(args.et) == 2 else Ratio(2)
        return EqualDivision(divisions, period, name)
    if args.rank2:
        if len(args.rank2) not in (2, 3):
            raise MicrotuneError("--rank2 takes GEN POS [NEG]")
        try:
            num_pos = int(args.rank2[1])
            num_neg = int(args.rank2[2]) if len(args.rank2) == 3 else 0
        except ValueError:
            raise MicrotuneError("--rank2: POS and NEG must be integers")
        return Rank2Temperament(Ratio.parse(args.rank2[0]), num_pos, num_neg, args.period, name)
    if args.harm:
        if len(args.harm) > 2:
            raise MicrotuneError("--harm takes LOWEST and an optional N")
        num_notes = args.harm[1] if len(args.harm) == 2 else None
        return HarmonicSeries(args.harm[0], num_notes, args.subharm, name)
    if args.cust:
        return ExplicitScale.from_scala_steps(args.cust, name or "Custom scale")
    if args.scl:
        scala_scale = scala.read_scl(args.scl)
        scale = scala.scala_to_scale(scala_scale)
        if name:
            scale.name = name
        return scale
    return EqualDivision(consts.SEMITONES_PER_OCTAVE)


def build_tuning(args: argparse.Namespace, scale: Scale) -> Tuning:
    reference = args.ref
    key_range = tuple(args.key_range)
    if args.kbm:
        mapping = scala.kbm_to_mapping(scala.read_kbm(args.kbm))
    elif args.layout is not None:
        root = reference.key if args.root is None else args.root
        mapping = search_layout(scale, args.layout, root, reference.key, reference.frequency,
                                key_range, args.generator_steps)
    else:
        mapping = KeyboardMapping.linear(args.root, reference.key, reference.frequency, key_range)
    return Tuning(scale, mapping)


def print_approximations(ratio: Ratio, max_denominator: int) -> None:
    result = approx.approximate(ratio, max_denominator)
    steps = approx.approximate_steps(ratio)
    nearest = approx.nearest_fraction(ratio)
    print(f"Target:            {ratio} = {ratio.cents:.6f}c")
    print(f"Fraction:          {result.ratio} ({result.deviation:+.6f}c, depth {result.depth})")
    print(f"Equal steps:       {steps}")
    print(f"Odd-limit {consts.DEFAULT_ODD_LIMIT}:      {nearest}")


def print_plan(plan: retune.AheadOfTimePlan) -> None:
    rows = [[str(a.key), str(a.channel), str(a.note), str(a.bend), f"{a.deviation:+.3f}"]
            for a in plan.assignments.values()]
    for line in utils.format_aligned_table(["Key", "Channel", "Note", "Bend", "Deviation (c)"], rows):
        print(line)
    print(f"Channels used: {plan.num_channels_used}/{plan.profile.num_channels}")
    if plan.unassigned_keys:
        print(f"Keys without channel: {', '.join(str(k) for k in plan.unassigned_keys)}")


def _write_sysex(path: str, data: bytes) -> bool:
    print(" ".join(f"{b:02X}" for b in data))
    return utils.safe_file_write(path, data)


def run(args: argparse.Namespace) -> int:
    """Execute the selected actions; returns the process exit code."""
    if args.approx is not None:
        print_approximations(args.approx, args.max_denominator)
        has_scale = any(getattr(args, a) for a in ("et", "rank2", "harm", "cust", "scl"))
        if not has_scale:
            return 0

    scale = build_scale(args)
    tuning = build_tuning(args, scale)
    logger.info("Built %r", tuning)

    output_base = args.output_file
    policy = mts.RangePolicy(args.range_policy)
    ok = True
    actions = 0

    if args.export_scl:
        actions += 1
        text = scala.format_scl(scala.scale_to_scala(scale), args.cents_precision)
        ok &= utils.safe_file_write(f"{output_base}.scl", text)
    if args.export_kbm:
        actions += 1
        ok &= utils.safe_file_write(f"{output_base}.kbm", scala.format_kbm(scala.mapping_to_kbm(tuning.mapping)))
    if args.dump:
        actions += 1
        for line in tables.format_dump(tables.dump_rows(tuning, odd_limit=args.odd_limit)):
            print(line)
    if args.jdump:
        actions += 1
        print(tables.dump_json(tuning, tables.dump_rows(tuning, odd_limit=args.odd_limit)))
    if args.xlsx:
        actions += 1
        ok &= tables.export_dump_excel(f"{output_base}.xlsx", tuning,
                                       tables.dump_rows(tuning, odd_limit=args.odd_limit))
    if args.mts:
        actions += 1
        options = mts.SingleNoteTuningChangeOptions(
            device_id=args.device_id, tuning_program=args.tuning_program, bank=args.bank,
            range_policy=policy, append_checksum=args.checksum)
        change = mts.single_note_tuning_change(tuning, options=options)
        if change.out_of_range_keys:
            print(f"Skipped keys: {', '.join(str(k) for k in change.out_of_range_keys)}")
        ok &= _write_sysex(f"{output_base}_sntc.syx", change.to_bytes())
    if args.octave_mts is not None:
        actions += 1
        fmt = mts.ScaleOctaveFormat(args.octave_mts)
        options = mts.ScaleOctaveTuningOptions(device_id=args.device_id, format=fmt, range_policy=policy,
                                               append_checksum=args.checksum)
        message = mts.ScaleOctaveTuningMessage.from_tuning(tuning, options)
        ok &= _write_sysex(f"{output_base}_octave.syx", message.to_bytes())
    if args.bulk_dump is not None:
        actions += 1
        message = mts.BulkTuningDumpMessage.from_tuning(tuning, args.bulk_dump, args.tuning_program,
                                                        args.device_id, policy)
        ok &= _write_sysex(f"{output_base}_bulk.syx", message.to_bytes())
    if args.plan_aot is not None:
        actions += 1
        profile = retune.SynthProfile(args.plan_aot, args.bend_range)
        print_plan(retune.plan_ahead_of_time(tuning, profile))

    if not actions:
        for line in tables.format_dump(tables.dump_rows(tuning, odd_limit=args.odd_limit)):
            print(line)
    return 0 if ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)
    utils.setup_logging(args.log_file, logging.DEBUG if args.verbose else logging.WARNING)
    if args.verbose:
        utils.print_banner()

    try:
        return run(args)
    except (MicrotuneError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
