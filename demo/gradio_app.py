"""CHOP-8 Interactive Demo.

A Gradio web interface for running CHIP-8 programs and viewing the display.

Usage:
    cd /path/to/chop8
    python demo/gradio_app.py

Features:
    - Write a hex listing or upload a ROM image
    - Choose compatibility quirks and clock rate
    - Hold keys while the program runs
    - See the framebuffer, registers and a disassembly trace
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
import numpy as np

from chop8 import Chip8CPU, Chip8Error, Quirks, load_rom_file, parse_program
from chop8.keypad import DEFAULT_KEY_LAYOUT


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    "Hex digits": """\
    6000        ; V0 = digit
    6100        ; V1 = x
    6201        ; V2 = y
    F029        ; I = glyph(V0)
    D125        ; draw 5 rows at (V1, V2)
    7001        ; next digit
    7104        ; x += 4
    3010        ; all 16 done?
    1206        ; no: loop
    1212        ; halt (jump to self)""",

    "BCD 157": """\
    A300        ; I = 0x300
    609D        ; V0 = 157
    F033        ; store digits at I
    F265        ; V0..V2 = 1, 5, 7
    6300        ; V3 = x
    F029        ; I = glyph(V0)
    D345        ; draw hundreds
    7305
    F129        ; I = glyph(V1)
    D345        ; draw tens
    7305
    F229        ; I = glyph(V2)
    D345        ; draw units
    121A        ; halt""",

    "Random maze": """\
    A21E        ; I = slash sprite
    C201        ; V2 = random 0/1
    3201        ; skip if V2 == 1
    A21A        ; I = backslash sprite
    D014        ; draw at (V0, V1)
    7004        ; x += 4
    3040        ; end of line?
    1200
    6000        ; x = 0
    7104        ; y += 4
    3120        ; end of screen?
    1200
    1218        ; halt
    80 40 20 10 ; backslash
    10 20 40 80 ; slash""",

    "Wait for key": """\
    F00A        ; V0 = next key pressed
    F029        ; I = glyph(V0)
    00E0
    6100
    D115        ; draw it at (0, 0)
    1200        ; wait again""",

    "Custom": "",
}

QUIRK_CHOICES = {
    "8xy6/8xyE shift Vx": Quirks.SHIFT_USES_X,
    "Fx55/Fx65 keep I": Quirks.BLOCK_TRANSFER_NO_ADVANCE,
    "Fx0A waits for release": Quirks.AWAIT_KEY_ON_RELEASE,
    "Fx0A polls key state": Quirks.AWAIT_KEY_POLL,
}

KEY_CHOICES = [f"{key:X} ({DEFAULT_KEY_LAYOUT[key]})" for key in range(16)]

PIXEL_RGB = (0xE0, 0xF0, 0xD0)
NO_PIXEL_RGB = (0x20, 0x28, 0x20)
SCALE = 8


# =============================================================================
# Execution Functions
# =============================================================================

def framebuffer_image(cpu: Chip8CPU) -> np.ndarray:
    """Scale the display up into an RGB image."""
    image = cpu.framebuffer().astype(np.uint8)
    return np.kron(image, np.ones((SCALE, SCALE, 1), dtype=np.uint8))


def run_program(listing: str, rom_file, quirk_names: list, held_keys: list,
                clock_hz: int, cycles: int, seed: int) -> tuple:
    """Run a program and return results.

    Returns:
        Tuple of (image, summary_text, registers_text, trace_text)
    """
    try:
        if rom_file is not None:
            program = load_rom_file(rom_file if isinstance(rom_file, str) else rom_file.name)
        else:
            program = parse_program(listing)

        quirks = Quirks.NONE
        for name in quirk_names:
            quirks |= QUIRK_CHOICES[name]

        cpu = Chip8CPU(program, quirks=quirks, clock_speed_hz=int(clock_hz),
                       seed=int(seed), pixel=PIXEL_RGB, no_pixel=NO_PIXEL_RGB,
                       trace=True)
    except (Chip8Error, ValueError, OSError) as e:
        return None, f"Error: {e}", "", ""

    # Keys are held from the first cycle, then released and pressed again
    # halfway through so a pending Fx0A sees an edge
    keys = [KEY_CHOICES.index(k) for k in held_keys]
    for key in keys:
        cpu.pump_input(key, True)

    error_msg = None
    try:
        half = int(cycles) // 2
        cpu.run(half)
        for key in keys:
            cpu.pump_input(key, False)
            cpu.pump_input(key, True)
        cpu.run(int(cycles) - half)
    except Chip8Error as e:
        error_msg = str(e)

    summary = cpu.get_summary()
    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"Cycles: {summary['cycles']}",
        f"Halted: {'Yes' if summary['halted'] else 'No'}",
        f"Awaiting key: {'Yes' if summary['paused'] else 'No'}",
        f"Sound active: {'Yes' if summary['sound_active'] else 'No'}",
        f"Lit pixels: {summary['lit_pixels']}",
    ]
    if error_msg:
        summary_lines.append(f"\nFault: {error_msg}")

    reg_lines = ["REGISTERS", "=" * 30]
    for reg, value in summary["registers"].items():
        marker = " *" if value != 0 else ""
        reg_lines.append(f"  {reg}: 0x{value:02X} ({value:>3}){marker}")
    reg_lines.append("")
    reg_lines.append(f"  PC: 0x{summary['pc']:03X}")
    reg_lines.append(f"  I:  0x{summary['index']:03X}")
    reg_lines.append(f"  DT: {summary['delay_timer']}")
    reg_lines.append(f"  Stack: {[f'0x{a:03X}' for a in summary['stack']]}")

    trace_lines = ["EXECUTION TRACE", "=" * 60]
    for entry in cpu.trace[-100:]:
        status = f"  !! {entry.error}" if entry.error else ""
        trace_lines.append(
            f"[{entry.cycle:>6}] 0x{entry.address:03X}: {entry.opcode:04X}  {entry.mnemonic}{status}"
        )
    if len(cpu.trace) > 100:
        trace_lines.insert(2, f"... ({len(cpu.trace) - 100} earlier entries)")

    return (
        framebuffer_image(cpu),
        "\n".join(summary_lines),
        "\n".join(reg_lines),
        "\n".join(trace_lines),
    )


def load_example(example_name: str) -> str:
    """Load an example program."""
    return EXAMPLE_PROGRAMS.get(example_name, "")


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="CHOP-8 Demo", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # CHOP-8: CHIP-8 Interpreter

        Runs a CHIP-8 program for a fixed number of instruction slots and shows
        the resulting display.

        **Pipeline**: `timers -> fetch -> decode -> key -> registry -> execute`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Hex digits",
                    label="Load Example"
                )

                program_input = gr.Textbox(
                    value=EXAMPLE_PROGRAMS["Hex digits"],
                    label="Hex Listing",
                    lines=15,
                    placeholder="Enter 4-digit words, 2-digit data bytes, ; comments"
                )

                rom_input = gr.File(label="ROM image (overrides listing)")

                gr.Markdown("### Settings")

                quirks_input = gr.CheckboxGroup(
                    choices=list(QUIRK_CHOICES.keys()),
                    label="Quirks"
                )
                keys_input = gr.CheckboxGroup(
                    choices=KEY_CHOICES,
                    label="Held keys"
                )

                with gr.Row():
                    clock_hz = gr.Slider(
                        minimum=60,
                        maximum=2000,
                        value=500,
                        step=10,
                        label="Clock (Hz)"
                    )
                    cycles = gr.Slider(
                        minimum=10,
                        maximum=20000,
                        value=2000,
                        step=10,
                        label="Cycles"
                    )
                    seed = gr.Number(value=0, precision=0, label="Seed")

                run_button = gr.Button("Run Program", variant="primary")

            with gr.Column(scale=3):
                display_output = gr.Image(label="Display", type="numpy")

                with gr.Row():
                    summary_output = gr.Textbox(
                        label="Summary",
                        lines=10,
                        interactive=False
                    )
                    registers_output = gr.Textbox(
                        label="Registers",
                        lines=10,
                        interactive=False
                    )

                trace_output = gr.Textbox(
                    label="Execution Trace",
                    lines=20,
                    interactive=False
                )

        with gr.Accordion("Instruction Reference", open=False):
            gr.Markdown("""
            | Word | Instruction | Effect |
            |------|-------------|--------|
            | `00E0` | `CLS` | Clear display |
            | `00EE` | `RET` | Return from subroutine |
            | `1nnn` | `JP nnn` | Jump |
            | `2nnn` | `CALL nnn` | Call subroutine |
            | `3xkk` / `4xkk` | `SE` / `SNE Vx, kk` | Skip if (not) equal |
            | `5xy0` / `9xy0` | `SE` / `SNE Vx, Vy` | Skip if registers (not) equal |
            | `6xkk` / `7xkk` | `LD` / `ADD Vx, kk` | Load / add immediate |
            | `8xy0`-`8xyE` | `LD OR AND XOR ADD SUB SHR SUBN SHL` | Register arithmetic, VF flag |
            | `Annn` | `LD I, nnn` | Set address register |
            | `Bnnn` | `JP V0, nnn` | Jump to nnn + V0 |
            | `Cxkk` | `RND Vx, kk` | Random byte AND kk |
            | `Dxyn` | `DRW Vx, Vy, n` | XOR sprite, VF = collision |
            | `Ex9E` / `ExA1` | `SKP` / `SKNP Vx` | Skip if key (not) held |
            | `Fx07` / `Fx15` / `Fx18` | `LD Vx, DT` / `LD DT, Vx` / `LD ST, Vx` | Timers |
            | `Fx0A` | `LD Vx, K` | Wait for key |
            | `Fx1E` / `Fx29` / `Fx33` | `ADD I, Vx` / `LD F, Vx` / `LD B, Vx` | Index, font, BCD |
            | `Fx55` / `Fx65` | `LD [I], Vx` / `LD Vx, [I]` | Block store / load |
            """)

        example_dropdown.change(
            fn=load_example,
            inputs=[example_dropdown],
            outputs=[program_input]
        )

        run_button.click(
            fn=run_program,
            inputs=[program_input, rom_input, quirks_input, keys_input,
                    clock_hz, cycles, seed],
            outputs=[display_output, summary_output, registers_output, trace_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
