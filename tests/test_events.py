from arlite.core.events import ObserverEvent

from record_models import Reply, Topic


def test_observer_subscribe_emit():
    event = ObserverEvent("test_evt")
    results = []

    def callback(payload):
        results.append(payload)

    event.connect(callback)
    event.connect(callback)
    event.emit("hello")

    assert len(event) == 1
    assert results == ["hello"]


def test_observer_disconnect():
    event = ObserverEvent("test_evt")
    results = []

    def callback():
        results.append(1)

    event.connect(callback)
    event.disconnect(callback)
    event.disconnect(callback)
    event.emit()

    assert len(results) == 0


def test_observer_error_safety(log_messages):
    """Ensure error in one subscriber doesnt block others"""
    event = ObserverEvent("err_evt")
    results = []

    def buggy_callback():
        raise ValueError("Bug")

    def worker_callback():
        results.append("ok")

    event.connect(buggy_callback)
    event.connect(worker_callback)

    event.emit()

    assert results == ["ok"]
    assert any("Bug" in m for m in log_messages)


def test_connect_as_decorator():
    event = ObserverEvent("deco_evt")

    @event.connect
    def callback(value):
        return value

    assert callback(3) == 3
    assert len(event) == 1
    assert event.emit(1) == 1


def test_emit_counts_completed_subscribers(log_messages):
    event = ObserverEvent("count_evt")
    event.connect(lambda: None)
    event.connect(lambda: 1 / 0)
    assert event.emit() == 1

    event.clear()
    assert event.emit() == 0


# --- Record lifecycle events ---

def test_record_lifecycle_events(store):
    seen = []
    on_create = Topic.after_create.connect(lambda record: seen.append(("create", record.title)))
    on_update = Topic.after_update.connect(lambda record: seen.append(("update", record.title)))
    on_destroy = Topic.after_destroy.connect(lambda record: seen.append(("destroy", record.title)))
    try:
        topic = Topic.create({"title": "first"})
        topic.save()
        topic.update_attribute("title", "second")
        topic.destroy()
        Topic().destroy()
    finally:
        Topic.after_create.disconnect(on_create)
        Topic.after_update.disconnect(on_update)
        Topic.after_destroy.disconnect(on_destroy)

    assert seen == [("create", "first"), ("update", "second"), ("destroy", "second")]


def test_base_class_events_see_subclass_records(store):
    order = []
    on_reply = Reply.after_create.connect(lambda record: order.append("Reply"))
    on_topic = Topic.after_create.connect(lambda record: order.append("Topic"))
    try:
        Reply.create({"title": "re"})
        Topic.create({"title": "plain"})
    finally:
        Reply.after_create.disconnect(on_reply)
        Topic.after_create.disconnect(on_topic)

    assert order == ["Reply", "Topic", "Topic"]


def test_failing_subscriber_does_not_abort_save(store, log_messages):
    def broken(record):
        raise RuntimeError("subscriber blew up")

    Topic.after_create.connect(broken)
    try:
        topic = Topic.create({"title": "kept"})
    finally:
        Topic.after_create.disconnect(broken)

    assert Topic.find(topic.id).title == "kept"
    assert any("subscriber blew up" in m for m in log_messages)
