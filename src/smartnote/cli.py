"""CLI entry point."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import datetime
from typing import Optional

from .api_client import ApiClient
from .audio_utils import play_clip
from .config import DEFAULT_CONFIG_PATH, Config, load_config_or_default, save_config
from .errors import PermissionDenied, SmartNoteError
from .generator import NoteGenerator
from .logging_utils import setup_logging
from .models import NOTE_DESCRIPTIONS, AudioClip, NoteType, PipelineState, RecorderState
from .notes_store import NoteStore
from .pipeline import SmartNoteSession
from .recorder import Recorder, SoundDeviceBackend, list_input_devices
from .renderer import format_elapsed, render_field_summary, render_level_meter, render_note
from .transcriber import build_transcriber


def _ask(prompt: str) -> str:
    try:
        return input(prompt)
    except EOFError:
        return ""


def _read_block(prompt: str) -> Optional[str]:
    """Multi-line input ended by a line with a single '.'; None if the first line is empty."""
    print(prompt)
    lines = []
    while True:
        try:
            line = input("> " if not lines else "  ")
        except EOFError:
            break
        if not lines and not line.strip():
            return None
        if line.strip() == ".":
            break
        lines.append(line)
    return "\n".join(lines).strip()


def record_clip(config: Config) -> Optional[AudioClip]:
    backend = SoundDeviceBackend(
        sample_rate_hz=config.audio.sample_rate_hz,
        channels=config.audio.channels,
        device_name=config.audio.device_name,
    )
    last_draw = {"at": 0.0}

    with Recorder(
        backend,
        preferred_formats=config.audio.preferred_formats,
        sample_rate_hz=config.audio.sample_rate_hz,
        channels=config.audio.channels,
    ) as recorder:

        def _draw(level: float) -> None:
            now = time.monotonic()
            if now - last_draw["at"] < 0.1:
                return
            last_draw["at"] = now
            sys.stdout.write(
                f"\r{render_level_meter(level)} {format_elapsed(recorder.elapsed_seconds)} "
            )
            sys.stdout.flush()

        recorder.on_volume_sample = _draw
        try:
            recorder.start()
        except PermissionDenied as exc:
            print(exc.message)
            return None

        print("Recording. Enter = stop, p = pause/resume, d = discard.")
        while True:
            cmd = _ask("").strip().lower()
            if cmd == "p":
                if recorder.state == RecorderState.PAUSED:
                    recorder.resume()
                    print("Resumed.")
                else:
                    recorder.pause()
                    print(f"Paused at {format_elapsed(recorder.elapsed_seconds)}.")
                continue
            if cmd == "d":
                recorder.discard()
                print("Recording discarded.")
                return None
            break
        try:
            clip = recorder.stop()
        except RuntimeError:
            print(f"\n{recorder.error}")
            return None
    print(f"\nRecorded {format_elapsed(clip.duration_seconds)} ({clip.mime_type}, {clip.size} bytes)")
    return clip


def _capture_loop(session: SmartNoteSession, config: Config) -> None:
    while session.state == PipelineState.CAPTURING:
        if session.error:
            print(f"Error: {session.error}")
        print(f"Note type: {session.note_type.value} ({NOTE_DESCRIPTIONS[session.note_type]})")
        choice = _ask(
            "[t]ype text, [r]ecord, [g]enerate, [m]anual entry, [n]ote type, "
            "[l]isten, [c]ancel: "
        ).strip().lower()
        if choice == "t":
            text = _read_block("Describe the visit (end with '.'):")
            if text is not None:
                session.set_rough_text(text)
                session.generate()
        elif choice == "r":
            clip = record_clip(config)
            if clip is not None:
                print("Transcribing audio...")
                session.submit_recording(clip)
        elif choice == "g":
            print(f"Generating {session.note_type.value} note...")
            session.generate()
        elif choice == "m":
            session.enter_manually()
        elif choice == "n":
            value = _ask("SOAP, BAP or Progress: ")
            try:
                session.select_note_type(value)
            except ValueError as exc:
                print(exc)
        elif choice == "l":
            if session.clip is None:
                print("Nothing recorded yet.")
            else:
                play_clip(session.clip)
        elif choice in ("c", ""):
            session.cancel()


def _review_loop(session: SmartNoteSession, auto_save: bool) -> None:
    while session.state == PipelineState.REVIEW:
        if auto_save:
            if not session.save():
                print(f"Error: {session.error}")
                session.cancel()
            return
        if session.error:
            print(f"Error: {session.error}")
        print("")
        print(render_field_summary(session.note))
        choice = _ask(
            "Field number to edit, [a]dditional notes, [v]iew, [s]ave, "
            "[b]ack, start [o]ver, [c]ancel: "
        ).strip().lower()
        names = session.note.field_names
        if choice.isdigit() and 1 <= int(choice) <= len(names):
            name = names[int(choice) - 1]
            print(f"Current: {session.note.get(name) or '(empty)'}")
            value = _read_block("New text (Enter keeps current, end with '.'):")
            if value is not None:
                session.edit_field(name, value)
        elif choice == "a":
            value = _read_block("Additional notes (end with '.'):")
            if value is not None:
                session.set_additional_notes(value)
        elif choice == "v":
            print(
                render_note(
                    session.note,
                    session.visit_id,
                    session.additional_notes,
                    generated=session.generated,
                )
            )
        elif choice == "s":
            print("Saving...")
            session.save()
        elif choice == "b":
            session.back_to_edit()
        elif choice == "o":
            session.start_over()
        elif choice in ("c", ""):
            session.cancel()


def run_note(args: argparse.Namespace, config: Config) -> int:
    api = ApiClient.from_config(config.api)
    if args.token:
        api.access_token = args.token
    if args.clinic_id:
        api.clinic_id = args.clinic_id

    outcome = {"saved": False}

    def _on_created() -> None:
        outcome["saved"] = True
        print("Note saved.")

    session = SmartNoteSession(
        visit_id=args.visit_id,
        transcriber=build_transcriber(config.transcription, api),
        generator=NoteGenerator(api),
        store=NoteStore(api),
        note_type=args.type or config.notes.default_note_type,
        on_note_created=_on_created,
        on_cancel=lambda: print("Cancelled."),
        auto_generate=config.notes.auto_generate,
    )

    if args.manual:
        session.enter_manually()
    elif args.text:
        session.set_rough_text(args.text)
        print(f"Generating {session.note_type.value} note...")
        session.generate()
    elif args.record:
        clip = record_clip(config)
        if clip is not None:
            print("Transcribing audio...")
            session.submit_recording(clip)

    while session.state != PipelineState.DONE:
        if session.state == PipelineState.CAPTURING:
            if args.yes:
                print(f"Error: {session.error or 'Nothing to generate.'}")
                session.cancel()
                break
            _capture_loop(session, config)
        elif session.state == PipelineState.REVIEW:
            _review_loop(session, auto_save=bool(args.yes))

    if outcome["saved"] and args.export:
        with open(args.export, "w", encoding="utf-8") as handle:
            handle.write(
                render_note(
                    session.note,
                    visit_id=session.visit_id,
                    additional_notes=session.additional_notes,
                    date=datetime.now().strftime("%Y-%m-%d"),
                    generated=session.generated,
                )
            )
        print(f"Exported {args.export}")
    return 0 if outcome["saved"] else 1


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(prog="smartnote")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Config file.")
    parser.add_argument("--verbose", action="store_true", help="Log to stderr.")
    sub = parser.add_subparsers(dest="command")

    devices_cmd = sub.add_parser("devices")
    devices_cmd.add_argument("--match", help="Filter device names by substring.")

    transcribe_cmd = sub.add_parser("transcribe")
    transcribe_cmd.add_argument("audio_path", help="Path to audio file.")

    note_cmd = sub.add_parser("note")
    note_cmd.add_argument("--visit-id", required=True, help="Visit the note belongs to.")
    note_cmd.add_argument(
        "--type",
        type=NoteType.parse,
        help="Note type: SOAP, BAP or Progress.",
    )
    source = note_cmd.add_mutually_exclusive_group()
    source.add_argument("--text", help="Rough notes to structure.")
    source.add_argument("--record", action="store_true", help="Record audio first.")
    source.add_argument("--manual", action="store_true", help="Fill fields by hand.")
    note_cmd.add_argument("--export", help="Write the saved note as Markdown.")
    note_cmd.add_argument("--token", help="Access token (overrides config).")
    note_cmd.add_argument("--clinic-id", help="Clinic context (overrides config).")
    note_cmd.add_argument(
        "--yes",
        action="store_true",
        help="Save the generated note without review prompts.",
    )

    config_cmd = sub.add_parser("config")
    config_cmd.add_argument("--path", default=DEFAULT_CONFIG_PATH, help="Output path.")

    args = parser.parse_args(argv)

    if args.command == "config":
        save_config(args.path, Config())
        print(f"Wrote {args.path}")
        return 0

    config = load_config_or_default(args.config)
    setup_logging(
        log_dir=config.log_dir,
        level=logging.DEBUG if config.debug_logging else logging.INFO,
        console=bool(args.verbose),
    )

    if args.command == "devices":
        devices = list_input_devices()
        if args.match:
            devices = [
                d for d in devices if args.match.lower() in d.get("name", "").lower()
            ]
        for device in devices:
            name = device.get("name", "Unknown")
            index = device.get("index", "?")
            channels = device.get("max_input_channels", 0)
            print(f"[{index}] {name} (inputs: {channels})")
        return 0

    if args.command == "transcribe":
        api = ApiClient.from_config(config.api)
        transcriber = build_transcriber(config.transcription, api)
        try:
            text = transcriber.transcribe_file(args.audio_path)
        except SmartNoteError as exc:
            print(exc.message)
            return 1
        print(text)
        return 0

    if args.command == "note":
        return run_note(args, config)

    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
