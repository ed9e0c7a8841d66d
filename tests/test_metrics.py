from pet_advice.core.metrics import MetricRegistry


def test_registry_snapshot_merges_counters_gauges_and_observations():
    registry = MetricRegistry()
    registry.inc("model_call_total", {"result": "ok"})
    registry.inc("model_call_total", {"result": "ok"}, value=2)
    registry.set("sessions_tracked", value=4)
    registry.observe("model_call_latency_ms", 120)
    registry.observe("model_call_latency_ms", 80.5)

    snapshot = registry.snapshot()
    assert snapshot["model_call_total{result=ok}"] == 3
    assert registry.get("model_call_total", {"result": "ok"}) == 3
    assert snapshot["sessions_tracked"] == 4.0
    assert snapshot["model_call_latency_ms_count"] == 2
    assert snapshot["model_call_latency_ms_sum"] == 200.5


def test_registry_reset_clears_everything():
    registry = MetricRegistry()
    registry.inc("a")
    registry.set("b", value=1)
    registry.observe("c", 1)
    registry.reset()
    assert registry.snapshot() == {}
    assert registry.get("a") == 0
