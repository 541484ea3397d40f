import logging

import pytest

from pysnowmix.kinds import (
    AudioFeedCodec,
    AudioMixerAttributes,
    AudioMixerCodec,
    AudioSinkCodec,
    TextAttributes,
    TextCodec,
)

from conftest import MIXER_INFO_HEADER


def test_mixer_listing_parses_ids_and_names():
    codec = AudioMixerCodec()
    lines = [
        "audio mixer add",
        "audio mixer 1 <Main>",
        "  audio mixer 3 <Studio B>",
        "audio mixers : 2",
    ]
    assert codec.parse_listing(lines) == {1: "Main", 3: "Studio B"}


def test_mixer_info_parses_detail_lines_and_metadata():
    codec = AudioMixerCodec()
    details, metadata = codec.parse_info(MIXER_INFO_HEADER + [
        "- audio mixer 1 : RUNNING, 48000, 2, 2, signed, 255,200, unmuted, 4096, 10, 1",
        "audio mixer 2 : STOPPED, 44100, 1, 2, signed, 100, muted, 0, 0, 0",
    ])

    assert metadata == {"count": 2, "max_items": 8, "verbose_level": 0}
    assert details[1] == {
        "state": "RUNNING",
        "rate": 48000,
        "channels": 2,
        "bytes_per_sample": 2,
        "signess": "signed",
        "volume": (255, 200),
        "muted": False,
        "buffer_size": 4096,
        "delay": 10,
        "queues": 1,
    }
    assert details[2]["volume"] == (100,)
    assert details[2]["muted"] is True


@pytest.mark.parametrize("token, muted", [("unmuted", False), ("muted", True), ("paused", True), ("", True)])
def test_anything_but_unmuted_counts_as_muted(token, muted):
    # Unknown tokens deliberately map to muted
    codec = AudioMixerCodec()
    details, _ = codec.parse_info([f"audio mixer 1 : RUNNING, 48000, 1, 2, signed, 255, {token}, 0, 0, 0"])
    assert details[1]["muted"] is muted


def test_unrecognized_info_lines_are_logged_and_skipped(caplog):
    codec = AudioMixerCodec()
    with caplog.at_level(logging.WARNING):
        details, metadata = codec.parse_info([
            "audio mixer info",
            "something new : 42",
            "audio mixer 1 : RUNNING, 48000, 1, 2, signed, 255, unmuted, 0, 0, 0",
        ])
    assert list(details) == [1]
    assert metadata == {}
    assert "something new : 42" in caplog.text


def test_detail_lines_with_wrong_field_count_are_skipped(caplog):
    codec = AudioMixerCodec()
    with caplog.at_level(logging.WARNING):
        details, _ = codec.parse_info([
            "audio mixer 1 : RUNNING, 48000, 2",
            "audio mixer 2 : RUNNING, fast, 1, 2, signed, 255, unmuted, 0, 0, 0",
            "audio mixer 3 : RUNNING, 48000, 1, 2, signed, 255, unmuted, 0, 0, 0",
        ])
    assert list(details) == [3]
    assert "audio mixer 1" in caplog.text
    assert "audio mixer 2" in caplog.text


def test_sink_info_has_no_delay_column():
    codec = AudioSinkCodec()
    details, metadata = codec.parse_info([
        "max audio sinks : 4",
        "audio sink id : state, rate, channels, bytespersample, signess, volume, mute, buffersize, queues",
        "audio sink 1 : RUNNING, 48000, 2, 2, signed, 255,255, unmuted, 0, 2",
    ])
    assert metadata == {"max_items": 4}
    assert details[1]["queues"] == 2
    assert "delay" not in details[1]


def test_feed_listing_only_matches_its_own_kind():
    codec = AudioFeedCodec()
    assert codec.parse_listing(["audio feed 2 <Mic>", "audio mixer 1 <Main>"]) == {2: "Mic"}


def test_merge_coerces_values_and_reports_changes():
    codec = AudioMixerCodec()
    current = AudioMixerAttributes(name="Main", rate=48000)
    merged, changed = codec.merge(current, {"rate": "48000", "channels": "2", "volume": [255, "128"]})
    assert merged.rate == 48000
    assert merged.channels == 2
    assert merged.volume == (255, 128)
    assert merged.name == "Main"
    assert sorted(changed) == ["channels", "volume"]


def test_merge_without_changes_keeps_the_record():
    codec = AudioMixerCodec()
    current = AudioMixerAttributes(name="Main")
    merged, changed = codec.merge(current, {"name": "Main"})
    assert merged is current
    assert changed == []


def test_merge_rejects_unknown_fields():
    with pytest.raises(ValueError, match="colour"):
        AudioMixerCodec().merge(AudioMixerAttributes(), {"colour": "blue"})


def test_render_new_mixer_creates_then_sets_fields():
    codec = AudioMixerCodec()
    attributes = AudioMixerAttributes(name="Main", rate=48000, channels=2, volume=(255, 255), muted=True, delay=20)
    changed = frozenset(["id", "name", "rate", "channels", "volume", "muted", "delay"])
    assert codec.render(1, attributes, changed, on_server=False) == [
        "audio mixer add 1 Main",
        "audio mixer rate 1 48000",
        "audio mixer channels 1 2",
        "audio mixer volume 1 255,255",
        "audio mixer mute on 1",
        "audio mixer delay 1 20",
    ]


def test_render_existing_mixer_only_sends_changed_fields():
    codec = AudioMixerCodec()
    attributes = AudioMixerAttributes(name="Main", rate=48000, muted=False, sources=(2, 3))
    assert codec.render(4, attributes, frozenset(["muted", "sources"]), on_server=True) == [
        "audio mixer mute off 4",
        "audio mixer source feed 4 2",
        "audio mixer source feed 4 3",
    ]


def test_render_delete():
    assert AudioMixerCodec().render_delete(3) == ["audio mixer add 3"]
    assert TextCodec().render_delete(3) == ["text string 3"]


def test_default_names():
    assert AudioMixerCodec().defaults(3) == {"name": "AudioMixer3"}
    assert AudioFeedCodec().defaults(1) == {"name": "AudioFeed1"}


def test_text_codec():
    codec = TextCodec()
    assert codec.info_command is None
    assert codec.listing_command == "text string"
    assert codec.parse_listing(["text string 1 <Hello world>", "text string 2 <>", "texts : 2"]) == {
        1: "Hello world",
        2: "",
    }
    attributes = TextAttributes(text="Breaking news")
    assert codec.render(2, attributes, frozenset(["text"]), on_server=True) == ["text string 2 Breaking news"]
    assert codec.render(2, attributes, frozenset(), on_server=True) == []
