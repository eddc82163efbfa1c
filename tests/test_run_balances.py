import run_balances


def test_missing_store_exits_non_zero(tmp_path):
    assert run_balances.main(["--links", str(tmp_path / "missing.json"), "--no-delay"]) == 1


def test_successful_update_exits_zero(tmp_path, monkeypatch):
    seen = {}

    async def fake_run_update(config, show_metrics=False):
        seen["config"] = config
        seen["show_metrics"] = show_metrics

    monkeypatch.setattr(run_balances, "run_update", fake_run_update)
    links = str(tmp_path / "links.json")

    assert run_balances.main(["--links", links, "--no-delay", "--metrics"]) == 0
    assert seen["config"].links_path == links
    assert seen["config"].request_delay == 0.0
    assert seen["show_metrics"] is True


def test_unexpected_fault_exits_non_zero(monkeypatch):
    async def broken_run_update(config, show_metrics=False):
        raise RuntimeError("boom")

    monkeypatch.setattr(run_balances, "run_update", broken_run_update)

    assert run_balances.main(["--no-delay"]) == 1
