import pytest

from conftest import FakeMedia, FakeSpeech
from storyreel.errors import MediaProcessingError, ProviderError
from storyreel.services.segmenter import SceneSegmenter, normalize_narration, split_sentences


def _non_space(text: str) -> str:
    return "".join(text.split())


def test_split_sentences_on_terminal_punctuation():
    assert split_sentences("Hello world. How are you? Great!") == ["Hello world.", "How are you?", "Great!"]


def test_trailing_fragment_becomes_last_sentence():
    assert split_sentences("First one. And then no ending") == ["First one.", "And then no ending"]


def test_punctuation_runs_stay_with_their_sentence():
    assert split_sentences("Wait... what?! Really.") == ["Wait...", "what?!", "Really."]
    assert split_sentences("...Silence. Then noise") == ["...Silence.", "Then noise"]


@pytest.mark.parametrize(
    "text",
    [
        "Octopuses have three hearts. Honey never spoils! Did you know bananas are berries?",
        "?! Odd start. Middle bit... and a tail",
        "No punctuation at all",
        "   ",
    ],
)
def test_every_character_lands_in_exactly_one_sentence(text):
    sentences = split_sentences(text)
    assert _non_space("".join(sentences)) == _non_space(text)
    assert all(sentence.strip() for sentence in sentences)


def test_normalize_narration_collapses_lines():
    assert normalize_narration("  First line.\n\n   Second line.  \n") == "First line. Second line."


@pytest.mark.asyncio
async def test_groups_close_once_threshold_is_reached(tmp_path):
    speech = FakeSpeech()
    media = FakeMedia(durations=[2.0, 2.0, 1.0, 3.0, 1.0])
    segmenter = SceneSegmenter(speech, media, min_duration=4.5)
    sentences = ["One.", "Two.", "Three.", "Four.", "Five."]

    groups = await segmenter.segment(sentences, "v1", tmp_path)

    assert [group.sentences for group in groups] == [("One.", "Two.", "Three."), ("Four.", "Five.")]
    assert groups[0].text == "One. Two. Three."
    assert groups[0].duration == pytest.approx(5.0)
    assert groups[1].duration == pytest.approx(4.0)
    assert speech.texts == sentences


@pytest.mark.asyncio
async def test_every_group_but_the_last_meets_minimum(tmp_path):
    media = FakeMedia(durations=[1.2, 4.6, 0.5, 0.5, 3.9, 2.2, 1.0])
    segmenter = SceneSegmenter(FakeSpeech(), media, min_duration=4.5)
    sentences = [f"Sentence {index}." for index in range(7)]

    groups = await segmenter.segment(sentences, "v1", tmp_path)

    assert all(group.duration >= 4.5 for group in groups[:-1])
    assert [s for group in groups for s in group.sentences] == sentences


@pytest.mark.asyncio
async def test_single_short_sentence_still_forms_a_group(tmp_path):
    segmenter = SceneSegmenter(FakeSpeech(), FakeMedia(durations=[1.5]))

    groups = await segmenter.segment(["Only one."], "v1", tmp_path)

    assert len(groups) == 1
    assert groups[0].duration == pytest.approx(1.5)


@pytest.mark.asyncio
async def test_probe_audio_is_removed(tmp_path):
    media = FakeMedia(durations=[5.0, 5.0])
    segmenter = SceneSegmenter(FakeSpeech(), media)

    await segmenter.segment(["A.", "B."], "v1", tmp_path)

    assert [path.name for path in media.probes] == ["probe_0.mp3", "probe_1.mp3"]
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_duration_failure_propagates_and_cleans_up(tmp_path):
    media = FakeMedia()
    media.probe_error = MediaProcessingError(["ffprobe", "probe_0.mp3"], 1, "Invalid data found")
    segmenter = SceneSegmenter(FakeSpeech(), media)

    with pytest.raises(MediaProcessingError):
        await segmenter.segment(["A.", "B."], "v1", tmp_path)

    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_measurement_speech_failure_propagates(tmp_path):
    media = FakeMedia()
    segmenter = SceneSegmenter(FakeSpeech(fail_at=1), media)

    with pytest.raises(ProviderError):
        await segmenter.segment(["A.", "B.", "C."], "v1", tmp_path)

    assert len(media.probes) == 1
