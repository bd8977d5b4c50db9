import pytest

from smartnote.errors import InvalidTransition, TranscriptionFailed
from smartnote.generator import NoteGenerator
from smartnote.models import NoteType, PipelineState, StructuredNote
from smartnote.notes_store import NoteStore
from smartnote.pipeline import SmartNoteSession
from smartnote.transcriber import RemoteTranscriber

SOAP_NOTE = {
    "subjective": "Patient reports knee pain.",
    "objective": "Improved ROM.",
    "assessment": "Recovering well.",
    "plan": "Continue exercises.",
}


class Counter:
    def __init__(self):
        self.count = 0

    def __call__(self):
        self.count += 1


def _session(api, **kwargs):
    return SmartNoteSession(
        visit_id="visit-1",
        transcriber=RemoteTranscriber(api),
        generator=NoteGenerator(api),
        store=NoteStore(api),
        **kwargs,
    )


def test_typed_text_to_saved_soap_note(make_api, ok):
    api, http = make_api(ok({"note": SOAP_NOTE}), ok({"id": "note-1"}))
    created = Counter()
    session = _session(api, on_note_created=created)

    session.set_rough_text("Patient reports knee pain, improved ROM")
    session.select_note_type("SOAP")
    assert session.generate() is True
    assert session.state == PipelineState.REVIEW
    assert list(session.note.to_payload()) == ["subjective", "objective", "assessment", "plan"]
    assert session.note.get("subjective").strip()

    session.edit_field("plan", "Add quad strengthening")
    assert session.save() is True

    assert session.state == PipelineState.DONE
    assert created.count == 1
    saved = http.calls[1]["json"]
    assert saved["visit_id"] == "visit-1"
    assert saved["note_type"] == "SOAP"
    assert saved["note_data"]["plan"] == "Add quad strengthening"


def test_generation_failure_keeps_rough_text(make_api, failed):
    api, _http = make_api(failed(500, "AI down"))
    session = _session(api)
    session.set_rough_text("Shoulder stiffness after surgery")

    assert session.generate() is False
    assert session.state == PipelineState.CAPTURING
    assert session.rough_text == "Shoulder stiffness after surgery"
    assert session.error


def test_generate_with_blank_text_makes_no_request(make_api):
    api, http = make_api()
    session = _session(api)
    session.set_rough_text("   ")
    assert session.generate() is False
    assert session.state == PipelineState.CAPTURING
    assert session.error == "Please provide some text or record audio first."
    assert http.calls == []


def test_empty_transcription_does_not_generate(make_api, ok, clip):
    api, http = make_api(ok({"transcription": ""}))
    session = _session(api)

    assert session.submit_recording(clip) is False
    assert session.state == PipelineState.CAPTURING
    assert session.error == "Please provide some text or record audio first."
    assert session.clip is clip
    assert len(http.calls) == 1


def test_recording_transcribed_then_generated(make_api, ok, clip):
    api, http = make_api(
        ok({"transcription": "Lower back pain, better today"}),
        ok({"note": {"behavior": "Cooperative", "assessment": "Improving", "plan": "Review"}}),
    )
    session = _session(api, note_type=NoteType.BAP)

    assert session.submit_recording(clip) is True
    assert session.rough_text == "Lower back pain, better today"
    assert session.state == PipelineState.REVIEW
    assert http.calls[1]["json"]["noteType"] == "BAP"


def test_transcription_without_auto_generate(make_api, ok, clip):
    api, http = make_api(ok({"transcription": "Ankle sprain"}))
    session = _session(api, auto_generate=False)
    assert session.submit_recording(clip) is True
    assert session.state == PipelineState.CAPTURING
    assert session.rough_text == "Ankle sprain"
    assert len(http.calls) == 1


def test_transcription_failure_keeps_input(make_api, network_error, clip):
    api, _http = make_api(network_error)
    session = _session(api)
    session.set_rough_text("typed earlier")
    assert session.submit_recording(clip) is False
    assert session.state == PipelineState.CAPTURING
    assert session.rough_text == "typed earlier"
    assert session.clip is clip
    assert "transcribe" in session.error.lower()


def test_save_blank_note_rejected_locally(make_api):
    api, http = make_api()
    session = _session(api)
    session.enter_manually()
    session.edit_field("subjective", "  ")
    assert session.save() is False
    assert session.state == PipelineState.REVIEW
    assert http.calls == []


def test_manual_entry_with_addendum_only_saves(make_api, ok):
    api, http = make_api(ok())
    session = _session(api, note_type="Progress")
    session.enter_manually()
    assert session.note.field_names == ("progressNote",)
    session.set_additional_notes("Patient did not attend exercises")
    assert session.save() is True
    assert http.calls[0]["json"]["additional_notes"] == "Patient did not attend exercises"


def test_save_failure_keeps_edits(make_api, ok, failed):
    api, _http = make_api(ok({"note": SOAP_NOTE}), failed(500))
    created = Counter()
    session = _session(api, on_note_created=created)
    session.set_rough_text("notes")
    session.generate()
    session.edit_field("plan", "edited plan")

    assert session.save() is False
    assert session.state == PipelineState.REVIEW
    assert session.note.get("plan") == "edited plan"
    assert created.count == 0


def test_start_over_clears_everything(make_api, ok):
    api, _http = make_api(ok({"note": SOAP_NOTE}))
    session = _session(api)
    session.set_rough_text("notes")
    session.generate()
    session.set_additional_notes("extra")
    session.start_over()

    assert session.state == PipelineState.CAPTURING
    assert session.rough_text == ""
    assert session.note is None
    assert session.additional_notes == ""


def test_back_to_edit_keeps_rough_text(make_api, ok):
    api, _http = make_api(ok({"note": SOAP_NOTE}))
    session = _session(api)
    session.set_rough_text("notes")
    session.generate()
    session.back_to_edit()
    assert session.state == PipelineState.CAPTURING
    assert session.rough_text == "notes"


def test_cancel_from_any_state(make_api):
    api, http = make_api()
    cancelled = Counter()
    session = _session(api, on_cancel=cancelled)
    session.enter_manually()
    session.cancel()
    session.cancel()

    assert session.state == PipelineState.DONE
    assert cancelled.count == 1
    assert http.calls == []
    with pytest.raises(InvalidTransition):
        session.save()


def test_edits_rejected_outside_review(make_api):
    api, _http = make_api()
    session = _session(api)
    with pytest.raises(InvalidTransition):
        session.edit_field("plan", "x")
    with pytest.raises(InvalidTransition):
        session.save()


def test_result_after_cancel_is_dropped(make_api, clip):
    api, _http = make_api()

    class CancellingTranscriber:
        def transcribe(self, _clip):
            session.cancel()
            assert session.state == PipelineState.DONE
            return "late text"

    session = SmartNoteSession(
        visit_id="visit-1",
        transcriber=CancellingTranscriber(),
        generator=NoteGenerator(api),
        store=NoteStore(api),
    )
    assert session.submit_recording(clip) is False
    assert session.state == PipelineState.DONE
    assert session.rough_text == ""


def test_busy_state_blocks_other_actions(make_api, clip):
    api, _http = make_api()
    seen = {}

    class ProbingTranscriber:
        def transcribe(self, _clip):
            seen["busy"] = session.is_busy
            with pytest.raises(InvalidTransition):
                session.generate()
            raise TranscriptionFailed()

    session = SmartNoteSession(
        visit_id="visit-1",
        transcriber=ProbingTranscriber(),
        generator=NoteGenerator(api),
        store=NoteStore(api),
    )
    assert session.submit_recording(clip) is False
    assert seen["busy"] is True
    assert session.state == PipelineState.CAPTURING


def test_cancel_before_auto_generate_ends_quietly(make_api, ok, clip):
    api, http = make_api(ok({"transcription": "Neck pain"}))
    cancelled = Counter()

    class CancelBeforeGenerate(SmartNoteSession):
        def _begin_generation(self):
            self.cancel()
            return super()._begin_generation()

    session = CancelBeforeGenerate(
        visit_id="visit-1",
        transcriber=RemoteTranscriber(api),
        generator=NoteGenerator(api),
        store=NoteStore(api),
        on_cancel=cancelled,
    )

    assert session.submit_recording(clip) is False
    assert session.state == PipelineState.DONE
    assert cancelled.count == 1
    assert len(http.calls) == 1


def test_auto_generate_starts_without_returning_to_capture(make_api, ok, clip):
    api, _http = make_api(ok({"transcription": "Hip pain"}))
    seen = []

    class RecordingGenerator:
        def generate(self, text, note_type):
            seen.append((session.state, text, note_type))
            return StructuredNote.empty(note_type)

    session = SmartNoteSession(
        visit_id="visit-1",
        transcriber=RemoteTranscriber(api),
        generator=RecordingGenerator(),
        store=NoteStore(api),
    )
    assert session.submit_recording(clip) is True
    assert seen == [(PipelineState.GENERATING, "Hip pain", NoteType.SOAP)]
    assert session.state == PipelineState.REVIEW


def test_save_while_saving_is_rejected(make_api, ok):
    api, _http = make_api(ok({"note": SOAP_NOTE}))
    created = Counter()
    nested = {}

    class ReentrantStore:
        def save(self, *_args):
            assert session.is_busy
            with pytest.raises(InvalidTransition):
                session.save()
            nested["checked"] = True

    session = SmartNoteSession(
        visit_id="visit-1",
        transcriber=RemoteTranscriber(api),
        generator=NoteGenerator(api),
        store=ReentrantStore(),
        on_note_created=created,
    )
    session.set_rough_text("notes")
    session.generate()

    assert session.save() is True
    assert nested["checked"] is True
    assert created.count == 1


def test_note_origin_is_tracked(make_api, ok):
    api, _http = make_api(ok({"note": SOAP_NOTE}))
    session = _session(api)
    session.enter_manually()
    assert session.generated is False

    session.back_to_edit()
    session.set_rough_text("notes")
    session.generate()
    assert session.generated is True

    session.start_over()
    assert session.generated is False
