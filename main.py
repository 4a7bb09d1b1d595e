#!/usr/bin/env python3
"""CHOP-8 Command Line Interface.

Run CHIP-8 programs headless with the CHOP-8 interpreter.

Usage:
    python main.py --rom roms/maze.ch8 --cycles 2000
    python main.py --listing programs/hex_digits.hex
    python main.py --inline "A20A 6000 6100 D015 1208 F0 90 90 90 F0"
"""

import argparse
import logging
import sys
import time
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from chop8 import Chip8CPU, Chip8Error, InterpreterConfig, Quirks, load_rom_file, parse_program


def run_realtime(cpu: Chip8CPU, seconds: float) -> None:
    """Drive the CPU at its clock rate for a wall-clock duration.

    Fixed-step accumulator: elapsed time is banked and spent in whole
    instruction periods, so the timers decay at 60Hz in real time.
    """
    dt = 1.0 / cpu.clock_speed_hz
    accumulator = 0.0
    start = previous = time.perf_counter()

    while previous - start < seconds:
        now = time.perf_counter()
        accumulator += now - previous
        previous = now

        while accumulator >= dt:
            cpu.step()
            accumulator -= dt

        time.sleep(0.001)


def main():
    parser = argparse.ArgumentParser(
        description="CHOP-8: CHIP-8 Interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a ROM for 2000 instructions and print the display
    python main.py --rom roms/maze.ch8 --cycles 2000

    # Run a bundled hex listing
    python main.py --listing programs/fibonacci.hex --cycles 100

    # Run with modern shift / block transfer semantics and a trace
    python main.py --rom roms/test.ch8 --modern --trace

    # Run for two seconds of wall-clock time at 700Hz
    python main.py --rom roms/maze.ch8 --realtime --seconds 2 --clock-hz 700

    # Run an inline hex listing
    python main.py --inline "6005 F029 D005 1206"
        """
    )

    parser.add_argument(
        "--rom", "-r",
        type=str,
        help="Path to a raw CHIP-8 program image"
    )
    parser.add_argument(
        "--listing", "-l",
        type=str,
        help="Path to a hex listing file (see programs/)"
    )
    parser.add_argument(
        "--inline", "-i",
        type=str,
        help="Inline hex listing (4-digit words, 2-digit data bytes)"
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        help="JSON interpreter configuration; command line flags override it"
    )
    parser.add_argument(
        "--cycles", "-n",
        type=int,
        help=f"Instructions to execute. Default: {Chip8CPU.DEFAULT_MAX_CYCLES}"
    )
    parser.add_argument(
        "--clock-hz",
        type=int,
        help="Clock rate in instructions per second. Default: 500"
    )
    parser.add_argument("--seed", type=int, help="Random generator seed")
    parser.add_argument(
        "--modern",
        action="store_true",
        help="Shorthand for --shift-uses-x --no-block-advance"
    )
    parser.add_argument(
        "--shift-uses-x",
        action="store_true",
        help="8xy6/8xyE shift Vx instead of Vy"
    )
    parser.add_argument(
        "--no-block-advance",
        action="store_true",
        help="Fx55/Fx65 leave I unchanged"
    )
    parser.add_argument(
        "--await-release",
        action="store_true",
        help="Fx0A waits for a key release instead of a press"
    )
    parser.add_argument(
        "--await-poll",
        action="store_true",
        help="Fx0A polls current key state instead of waiting for an event"
    )
    parser.add_argument(
        "--realtime",
        action="store_true",
        help="Run at the clock rate in wall-clock time instead of a cycle count"
    )
    parser.add_argument(
        "--seconds",
        type=float,
        default=1.0,
        help="Duration for --realtime. Default: 1.0"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print full execution trace"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (display only)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args()

    # Validate arguments
    if not (args.rom or args.listing or args.inline):
        parser.error("One of --rom, --listing or --inline is required")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # Configuration
    config = InterpreterConfig.load(args.config) if args.config else InterpreterConfig()
    if args.clock_hz is not None:
        config.clock_speed_hz = args.clock_hz
    if args.seed is not None:
        config.seed = args.seed
    if args.cycles is not None:
        config.max_cycles = args.cycles
    if args.modern:
        config.quirks |= Quirks.MODERN
    if args.shift_uses_x:
        config.quirks |= Quirks.SHIFT_USES_X
    if args.no_block_advance:
        config.quirks |= Quirks.BLOCK_TRANSFER_NO_ADVANCE
    if args.await_release:
        config.quirks |= Quirks.AWAIT_KEY_ON_RELEASE
    if args.await_poll:
        config.quirks |= Quirks.AWAIT_KEY_POLL

    # Load program
    if args.rom:
        rom_path = Path(args.rom)
        if not rom_path.exists():
            print(f"Error: ROM file not found: {args.rom}")
            return 1
        program = load_rom_file(rom_path)
        if not args.quiet:
            print(f"Loading program: {args.rom} ({len(program)} bytes)")
    else:
        if args.listing:
            listing_path = Path(args.listing)
            if not listing_path.exists():
                print(f"Error: listing file not found: {args.listing}")
                return 1
            source = listing_path.read_text()
        else:
            source = args.inline
        try:
            program = parse_program(source)
        except ValueError as e:
            parser.error(str(e))
        if not args.quiet:
            print(f"Running listing ({len(program)} bytes)")

    try:
        cpu = Chip8CPU.from_config(config, program, trace=args.trace)
    except (Chip8Error, ValueError) as e:
        print(f"Error: {e}")
        return 1

    # Run
    if not args.quiet:
        print("-" * 64)
        print(f"Executing ({', '.join(config.quirks.to_names()) or 'legacy quirks'})...")
        print("-" * 64)

    failed = False
    try:
        if args.realtime:
            run_realtime(cpu, args.seconds)
        else:
            cpu.run(config.max_cycles)
    except Chip8Error as e:
        print(f"Execution error: {e}")
        failed = True

    # Output
    print(cpu.state.display.to_text())

    if args.trace:
        cpu.print_trace()
    elif not args.quiet:
        print()
        summary = cpu.get_summary()
        print(f"Cycles: {summary['cycles']}")
        print(f"Halted: {summary['halted']}")
        print(f"Awaiting key: {summary['paused']}")
        print(f"PC: 0x{summary['pc']:03X}  I: 0x{summary['index']:03X}")
        print(f"Registers: {summary['registers']}")
        print(f"Sound active: {summary['sound_active']}")

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
