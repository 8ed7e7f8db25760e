import threading

import pytest

from regionscribe.generation.demux import InputState, STOP_NOTE
from regionscribe.generation.errors import InferenceError, ValidationError
from regionscribe.generation.orchestrator import (GenerationOrchestrator, GenerationInput, InputStarted,
                                                  ChunkReceived, InputCompleted, JobCancelled, JobFailed,
                                                  JobFinished)
from regionscribe.inference.interface import GenerationParams, InferenceClient

PARAMS = GenerationParams(model="m", prompt="Extract the text.")


def inputs(n):
    return [GenerationInput(raster=b"raster-%d" % i, region_id=f"r{i}") for i in range(n)]


def test_two_regions_stream_in_order(scripted_client):
    client = scripted_client([["Hello", " world"], ["Foo"]])
    job = GenerationOrchestrator(client).start(inputs(2), PARAMS)
    events = list(job)

    assert job.texts == ["Hello world", "Foo"]
    assert job.cumulative_text.startswith("Region 1:\nHello world\n\nRegion 2:\nFoo")
    assert job.is_complete
    assert job.states == [InputState.COMPLETE, InputState.COMPLETE]
    assert [type(e) for e in events] == [InputStarted, ChunkReceived, ChunkReceived, InputCompleted,
                                         InputStarted, ChunkReceived, InputCompleted, JobFinished]
    assert [e.index for e in events if isinstance(e, ChunkReceived)] == [0, 0, 1]
    assert [image for image, _ in client.calls] == [b"raster-0", b"raster-1"]


def test_whole_image_input(scripted_client):
    job = GenerationOrchestrator(scripted_client([["X", "Y"]])).start(inputs(1), PARAMS).run()
    assert job.cumulative_text == "Region 1:\nXY"


def test_cumulative_text_grows_chunk_by_chunk(scripted_client):
    job = GenerationOrchestrator(scripted_client([["Hello", " world"], ["Foo"]])).start(inputs(2), PARAMS)
    progress = [e.cumulative_text for e in job if isinstance(e, ChunkReceived)]
    assert progress == ["Region 1:\nHello", "Region 1:\nHello world", "Region 1:\nHello world\n\nRegion 2:\nFoo"]


def test_markers_appear_in_capture_order(scripted_client):
    client = scripted_client([["a"], ["Region 9: b"], ["c"]])
    text = GenerationOrchestrator(client).start(inputs(3), PARAMS).run().cumulative_text
    assert text.index("Region 1:") < text.index("Region 2:") < text.index("Region 3:")


def test_first_input_without_output_still_gets_its_marker(scripted_client):
    text = GenerationOrchestrator(scripted_client([[], ["b"]])).start(inputs(2), PARAMS).run().cumulative_text
    assert text == "Region 1:\n\n\nRegion 2:\nb"


def test_calls_are_never_concurrent(scripted_client):
    client = scripted_client([["a", "b"], ["c"], ["d", "e"]])
    GenerationOrchestrator(client).start(inputs(3), PARAMS).run()
    assert client.max_active_streams == 1
    assert len(client.calls) == 3


def test_no_model_fails_without_network(scripted_client):
    client = scripted_client([["x"]])
    with pytest.raises(ValidationError, match="no model selected"):
        GenerationOrchestrator(client).start(inputs(1), GenerationParams(model="", prompt="p"))
    assert client.calls == []


def test_no_inputs_fails_without_network(scripted_client):
    client = scripted_client([])
    with pytest.raises(ValidationError, match="no image or region selected"):
        GenerationOrchestrator(client).start([], PARAMS)
    assert client.calls == []


def test_cancel_during_second_region(scripted_client):
    client = scripted_client([["Hello", " world"], ["Foo", "Bar", "Baz"]])
    job = GenerationOrchestrator(client).start(inputs(2), PARAMS)
    events = []
    for event in job:
        events.append(event)
        if isinstance(event, ChunkReceived) and event.index == 1:
            assert job.cancel()

    assert job.states == [InputState.COMPLETE, InputState.COMPLETE]
    assert job.texts[0] == "Hello world"
    assert job.texts[1].endswith(STOP_NOTE)
    assert job.cumulative_text == "Region 1:\nHello world\n\nRegion 2:\nFoo\n\n" + STOP_NOTE
    assert job.cumulative_text.count(STOP_NOTE) == 1
    assert job.was_cancelled and job.error is None
    assert not any(isinstance(e, JobFailed) for e in events)
    assert job.view().texts == ("Hello world", "Foo")
    assert job.view().stop_note == STOP_NOTE
    assert isinstance(events[-2], JobCancelled) and isinstance(events[-1], JobFinished)


def test_cancel_skips_queued_inputs(scripted_client):
    client = scripted_client([["a", "b"], ["c"], ["d"]])
    job = GenerationOrchestrator(client).start(inputs(3), PARAMS)
    for event in job:
        if isinstance(event, ChunkReceived):
            job.cancel()
    assert len(client.calls) == 1
    assert job.cumulative_text == "Region 1:\na\n\n" + STOP_NOTE
    assert job.states == [InputState.COMPLETE] * 3


def test_cancel_twice_appends_the_note_once(scripted_client):
    job = GenerationOrchestrator(scripted_client([["a", "b"]])).start(inputs(1), PARAMS)
    for event in job:
        if isinstance(event, ChunkReceived):
            assert job.cancel()
            assert not job.cancel()
    assert job.cumulative_text.count(STOP_NOTE) == 1
    assert not job.cancel()


def test_cancel_from_another_thread_unblocks_a_stalled_stream(blocking_stream):
    stream = blocking_stream(["partial"])

    class StalledClient(InferenceClient):
        NAME = "Stalled"

        def check_availability(self):
            return True

        def list_models(self):
            return ["m"]

        def generate(self, image, params):
            return stream

    job = GenerationOrchestrator(StalledClient()).start(inputs(1), PARAMS)
    runner = threading.Thread(target=job.run)
    runner.start()
    assert stream.started.wait(5)
    job.cancel()
    runner.join(5)
    assert not runner.is_alive()
    assert job.cumulative_text == "Region 1:\npartial\n\n" + STOP_NOTE


def test_failure_aborts_the_job_and_keeps_finished_text(scripted_client):
    client = scripted_client([["Hello"], (["Fo"], InferenceError("HTTP error! status: 500")), ["never"]])
    job = GenerationOrchestrator(client).start(inputs(3), PARAMS)
    events = list(job)

    failed = [e for e in events if isinstance(e, JobFailed)]
    assert len(failed) == 1 and failed[0].index == 1
    assert "500" in str(job.error)
    assert job.texts[0] == "Hello"
    assert len(client.calls) == 2
    assert job.is_complete
    assert job.states == [InputState.COMPLETE] * 3
    assert STOP_NOTE not in job.cumulative_text


def test_unexpected_error_becomes_inference_error(scripted_client):
    client = scripted_client([([], KeyError("response"))])
    job = GenerationOrchestrator(client).start(inputs(1), PARAMS).run()
    assert isinstance(job.error, InferenceError)


def test_job_runs_only_once(scripted_client):
    job = GenerationOrchestrator(scripted_client([["a"]])).start(inputs(1), PARAMS).run()
    with pytest.raises(RuntimeError):
        job.run()


def test_view_keeps_marker_lookalikes_in_their_own_region(scripted_client):
    client = scripted_client([["Intro\n", "Region 2:", " North\nend"], ["Foo"]])
    job = GenerationOrchestrator(client).start(inputs(2), PARAMS)
    views = []
    for event in job:
        views.append(job.view())
        if isinstance(event, ChunkReceived) and event.index == 0:
            assert views[-1].states == (InputState.GENERATING, InputState.QUEUED)
            assert views[-1].texts[1] == ""

    assert views[-1].texts == ("Intro\nRegion 2: North\nend", "Foo")
    assert views[-1].is_finished
    assert views[-1].stop_note is None
