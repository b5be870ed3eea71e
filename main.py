#!/usr/bin/env python3
"""
Silence Trimmer CLI
Remove dead air from spoken-word audio, buffer by buffer, with faded edges.

Usage:
    python main.py lecture.mp3 lecture_trimmed.wav
    python main.py lecture.mp3 lecture_trimmed.wav --level aggressive
    python main.py podcast.m4a --auto-output --format mp3 --normalize
"""

import argparse
import logging
import os
import sys
import time

from tqdm import tqdm

from infrastructure.audio.file_renderer import trim_file
from trimmer.errors import TrimmerError
from trimmer.pipeline import PipelineConfig
from trimmer.printer import OutputPrinter
from trimmer.profiles import LEVEL_NAMES
from trimmer.utils import (
    DEFAULT_PARAMS,
    SUPPORTED_OUTPUT_FORMATS,
    format_seconds,
    get_output_path,
)


def build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="silence-trim",
        description="Trim silent gaps out of an audio file.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py talk.mp3 talk_trimmed.wav
  python main.py talk.mp3 talk_trimmed.mp3 --level mild --gain 1.5
  python main.py talk.mp3 --auto-output --format flac --quiet

Level guide:
  mild        only long, obvious pauses; keeps generous edges
  medium      balanced (default)
  aggressive  short pauses too; no edge padding
  off         pass audio through untouched
        """,
    )

    parser.add_argument(
        "input",
        metavar="INPUT",
        help="Path to the input audio file (.mp3, .wav, .flac, .ogg, .aac, .m4a).",
    )
    parser.add_argument(
        "output",
        metavar="OUTPUT",
        nargs="?",
        default=None,
        help="Path for the output file. Omit if using --auto-output.",
    )

    trim_group = parser.add_argument_group("Trim Parameters")
    trim_group.add_argument(
        "--level",
        "-l",
        choices=LEVEL_NAMES,
        default=DEFAULT_PARAMS["level"],
        help=f"Trim aggressiveness (default: {DEFAULT_PARAMS['level']}).",
    )
    trim_group.add_argument(
        "--gain",
        "-g",
        type=float,
        default=DEFAULT_PARAMS["gain"],
        metavar="GAIN",
        help=f"Output gain multiplier (default: {DEFAULT_PARAMS['gain']}).",
    )
    trim_group.add_argument(
        "--normalize",
        action="store_true",
        help="Peak-normalize the trimmed result (holds it in memory).",
    )
    trim_group.add_argument(
        "--buffer-frames",
        type=int,
        default=DEFAULT_PARAMS["buffer_frames"],
        metavar="N",
        help=f"Frames per analysis buffer (default: {DEFAULT_PARAMS['buffer_frames']}).",
    )
    trim_group.add_argument(
        "--guard",
        type=float,
        default=DEFAULT_PARAMS["guard"],
        metavar="SECONDS",
        help=f"Never trim the final N seconds (default: {DEFAULT_PARAMS['guard']}).",
    )

    out_group = parser.add_argument_group("Output Options")
    out_group.add_argument(
        "--auto-output",
        action="store_true",
        help="Derive the output filename from the input (talk.mp3 -> talk_trimmed.wav).",
    )
    out_group.add_argument(
        "--format",
        type=str,
        default=None,
        choices=["mp3", "wav", "flac", "ogg", "m4a"],
        help="Output format (default: wav, or inferred from OUTPUT filename).",
    )
    out_group.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress all output except errors.",
    )
    out_group.add_argument(
        "--no-color",
        "-n",
        action="store_true",
        help="Disable colored output (also auto-disabled when NO_COLOR env var is set).",
    )
    out_group.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log pipeline events to stderr.",
    )

    return parser


def resolve_output_path(parser: argparse.ArgumentParser, args: argparse.Namespace) -> str:
    output_ext: str = ".wav"
    if args.format is not None:
        output_ext = f".{args.format}"
    elif args.output is not None:
        ext: str = os.path.splitext(args.output)[1].lower()
        if ext in SUPPORTED_OUTPUT_FORMATS:
            output_ext = ext

    if args.output is None and args.auto_output:
        return get_output_path(args.input, suffix="_trimmed", output_ext=output_ext)
    if args.output is not None:
        if args.format is not None and not args.output.lower().endswith(output_ext):
            return os.path.splitext(args.output)[0] + output_ext
        return args.output

    parser.error(
        "Provide an OUTPUT path, or use --auto-output to generate one automatically."
    )
    return ""  # unreachable, parser.error exits


def main() -> None:
    parser: argparse.ArgumentParser = build_parser()
    args: argparse.Namespace = parser.parse_args()

    if args.verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s [%(levelname)s] %(message)s",
        )

    printer: OutputPrinter = OutputPrinter(quiet=args.quiet, no_color=args.no_color)
    output_path: str = resolve_output_path(parser, args)

    if args.guard < 0:
        printer.error("Guard window cannot be negative.", hint="Use --guard 0 to trim right to the end.")
        sys.exit(1)

    config: PipelineConfig = PipelineConfig(
        guard_window_sec=args.guard,
        buffer_frames=args.buffer_frames,
    )

    start_time: float = time.time()
    try:
        if args.quiet:
            result = trim_file(
                args.input,
                output_path,
                level=args.level,
                gain=args.gain,
                normalize=args.normalize,
                config=config,
            )
        else:
            with tqdm(total=0, desc="Trimming", unit="frame", unit_scale=True) as pbar:

                def cli_callback(frames_done: int, total_frames: int) -> None:
                    if pbar.total != total_frames:
                        pbar.total = total_frames
                    pbar.update(frames_done - pbar.n)

                result = trim_file(
                    args.input,
                    output_path,
                    level=args.level,
                    gain=args.gain,
                    normalize=args.normalize,
                    config=config,
                    progress_callback=cli_callback,
                )

        size_mb: float = os.path.getsize(output_path) / (1024 * 1024)
        elapsed: float = time.time() - start_time
        saved_pct: float = (
            100.0 * result.time_trimmed / result.duration if result.duration > 0 else 0.0
        )

        printer.success(
            title=output_path,
            details={
                "Format": os.path.splitext(output_path)[1].upper().lstrip("."),
                "Level": args.level,
                "Input": format_seconds(result.duration),
                "Output": format_seconds(result.output_duration),
                "Time saved": f"{format_seconds(result.time_trimmed)} ({saved_pct:.1f}%)",
                "Size": f"{size_mb:.2f} MB",
                "Took": f"{elapsed:.1f}s",
            },
        )

    except (FileNotFoundError, ValueError) as exc:
        printer.error(str(exc))
        sys.exit(1)
    except TrimmerError as exc:
        printer.error(str(exc), hint="Check that the file plays in another player.")
        sys.exit(1)
    except KeyboardInterrupt:
        printer.warning("Trimming cancelled.", hint="Output file may be incomplete.")
        sys.exit(130)


if __name__ == "__main__":
    main()
