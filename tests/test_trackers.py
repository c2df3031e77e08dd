from cardstream.stream.models import Record, RecordField, RecordItem, Section
from cardstream.stream.trackers import CompletionTracker, StreamStage, StreamState


def _field(index, value, placeholder=False):
    return RecordField(id=f"f{index}", label=f"L{index}", value=value, placeholder=placeholder)


def _section(fields=(), items=(), title="S", section_id="s0"):
    return Section(id=section_id, title=title, fields=tuple(fields), items=tuple(items))


class TestPlaceholderRules:
    def test_field_placeholder(self):
        tracker = CompletionTracker()
        assert tracker.is_field_placeholder(_field(0, "..."))
        assert tracker.is_field_placeholder(_field(0, None))
        assert tracker.is_field_placeholder(_field(0, "x", placeholder=True))
        assert not tracker.is_field_placeholder(_field(0, "x"))
        assert not tracker.is_field_placeholder(_field(0, 0))

    def test_custom_sentinel(self):
        tracker = CompletionTracker(placeholder_value="TBD")
        assert tracker.is_field_placeholder(_field(0, "TBD"))
        assert not tracker.is_field_placeholder(_field(0, "..."))

    def test_item_placeholder(self):
        tracker = CompletionTracker()
        assert tracker.is_item_placeholder(RecordItem(id="i", title="Item 3"))
        assert tracker.is_item_placeholder(RecordItem(id="i", title=""))
        assert tracker.is_item_placeholder(RecordItem(id="i", title="Real", placeholder=True))
        assert not tracker.is_item_placeholder(RecordItem(id="i", title="Item 3", description="d"))
        assert not tracker.is_item_placeholder(RecordItem(id="i", title="Real"))


def test_completion_percentage():
    tracker = CompletionTracker()
    assert tracker.completion_percentage(_section([_field(0, "a"), _field(1, "...")])) == 0.5
    assert tracker.completion_percentage(_section()) == 0.5
    assert tracker.completion_percentage(_section(title="")) == 0.0


def test_empty_titled_section_is_complete():
    tracker = CompletionTracker()
    report = tracker.evaluate(Record(title="T", sections=(_section(),)))
    assert report.completed == [0]


def test_completion_is_announced_once():
    tracker = CompletionTracker()
    record = Record(sections=(_section([_field(0, "a")]),))

    assert tracker.evaluate(record).completed == [0]
    assert tracker.evaluate(record).completed == []
    assert tracker.get("s0").is_complete


def test_completion_never_reverts():
    tracker = CompletionTracker()
    tracker.evaluate(Record(sections=(_section([_field(0, "a")]),)))
    report = tracker.evaluate(Record(sections=(_section([_field(0, "a"), _field(1, "...")]),)))

    assert not report
    assert tracker.get("s0").is_complete
    assert tracker.get("s0").percentage == 1.0


def test_progress_above_threshold():
    tracker = CompletionTracker(progress_threshold=0.1)

    def record(real):
        fields = [_field(i, "v" if i < real else "...") for i in range(4)]
        return Record(sections=(_section(fields),))

    assert tracker.evaluate(record(1)).progressed == [0]
    assert tracker.evaluate(record(2)).progressed == [0]
    assert tracker.evaluate(record(2)).progressed == []


def test_percentage_never_decreases():
    tracker = CompletionTracker()
    fields = [_field(0, "a"), _field(1, "b"), _field(2, "..."), _field(3, "...")]
    tracker.evaluate(Record(sections=(_section(fields),)))

    fewer = [_field(0, "a"), _field(1, "..."), _field(2, "..."), _field(3, "...")]
    tracker.evaluate(Record(sections=(_section(fewer),)))
    assert tracker.get("s0").percentage == 0.5


def test_mark_all_complete_reports_unannounced():
    tracker = CompletionTracker()
    done = _section([_field(0, "a")], section_id="done")
    pending = _section([_field(0, "...")], section_id="pending")
    record = Record(sections=(done, pending))

    tracker.evaluate(record)
    assert tracker.mark_all_complete(record) == [1]
    assert all(c.is_complete for c in tracker.snapshot().values())
    assert tracker.get_stats()["complete_sections"] == 2


def test_stream_state():
    state = StreamState()
    assert state.to_dict() == {
        "isActive": False,
        "stage": "idle",
        "progress": 0.0,
        "bufferLength": 0,
        "targetLength": 0,
        "error": None,
    }

    streaming = state.evolve(is_active=True, stage=StreamStage.STREAMING, progress=0.4)
    assert streaming.progress == 0.4
    assert state.stage is StreamStage.IDLE

    assert not StreamStage.STREAMING.is_terminal
    assert StreamStage.COMPLETE.is_terminal
    assert StreamStage.ABORTED.is_terminal
    assert StreamStage.ERROR.is_terminal
