import random
from collections import Counter
from concurrent.futures import ThreadPoolExecutor

import pytest

from echo_sandbox.delays import DelaySimulator
from echo_sandbox.models import InboundRequest
from echo_sandbox.rng import SharedRandom
from echo_sandbox.scenarios import (
    ScenarioDefinition,
    ScenarioEngine,
    ScenarioError,
    ScenarioResponse,
    load_definitions,
    parse_definitions,
)


@pytest.fixture
def engine(sleep):
    return ScenarioEngine(DelaySimulator(SharedRandom(random.Random(5)), sleep=sleep))


def roll(*statuses, path="/roll"):
    return ScenarioDefinition(path, tuple(ScenarioResponse(status=s) for s in statuses))


def test_responses_cycle_in_order(engine):
    engine.install([roll(201, 202)])
    seen = [engine.advance("/roll").status for _ in range(5)]
    assert seen == [201, 202, 201, 202, 201]


def test_unknown_path_is_not_handled(engine):
    engine.install([roll(201)])
    assert engine.advance("/other") is None
    assert engine.respond(InboundRequest("GET", "/other")) is None


def test_replacing_definition_resets_cursor(engine):
    engine.install([roll(201, 202, 203)])
    engine.advance("/roll")
    engine.advance("/roll")
    engine.install([roll(301, 302)])
    assert engine.advance("/roll").status == 301


def test_reinstalling_same_definition_resets_cursor(engine):
    engine.install([roll(201, 202)])
    engine.advance("/roll")
    engine.install([roll(201, 202)])
    assert engine.advance("/roll").status == 201


def test_install_only_touches_listed_paths(engine):
    engine.install([roll(201, 202), roll(500, 503, path="/flaky")])
    engine.advance("/flaky")
    engine.install([roll(299)])
    assert engine.advance("/flaky").status == 503
    assert len(engine.definitions()) == 2


def test_concurrent_visits_do_not_lose_updates(engine):
    engine.install([roll(201, 202)])
    with ThreadPoolExecutor(max_workers=8) as pool:
        statuses = list(pool.map(lambda _: engine.advance("/roll").status, range(200)))
    assert Counter(statuses) == {201: 100, 202: 100}
    # 200 visits leave the cursor back at the start
    assert engine.advance("/roll").status == 201


def test_respond_applies_delay_and_body(engine, sleep):
    engine.install([ScenarioDefinition("/slow", (ScenarioResponse(status=200, delay="150ms", body='{"ok": true}'),))])
    response = engine.respond(InboundRequest("GET", "/slow"))
    assert sleep.calls == [0.15]
    assert response.status_code == 200
    assert response.body == b'{"ok": true}'
    assert response.headers["X-Echo-Scenario"] == "true"
    assert response.content_type == "application/json"


def test_respond_with_delay_range(engine, sleep):
    engine.install([ScenarioDefinition("/slow", (ScenarioResponse(delay="10-20ms"),))])
    engine.respond(InboundRequest("GET", "/slow"))
    assert 0.01 <= sleep.calls[0] <= 0.02


def test_respond_with_empty_body_dumps_request(engine):
    engine.install([roll(503)])
    response = engine.respond(InboundRequest("GET", "/roll?attempt=2"))
    assert response.status_code == 503
    assert response.body.startswith(b"GET /roll?attempt=2 HTTP/1.1")
    assert response.content_type == "application/json"


def test_query_string_does_not_change_path_match(engine):
    engine.install([roll(207)])
    assert engine.respond(InboundRequest("POST", "/roll?x=1")).status_code == 207


def test_load_definitions_accepts_json_and_yaml():
    as_json = load_definitions('[{"path": "/a", "responses": [{"status": 201, "delay": "5ms", "body": "{}"}]}]')
    as_yaml = load_definitions(
        "- path: /a\n"
        "  responses:\n"
        "    - status: 201\n"
        "      delay: 5ms\n"
        "      body: '{}'\n"
    )
    assert as_json == as_yaml
    assert as_json[0].responses[0] == ScenarioResponse(status=201, delay="5ms", body="{}")


@pytest.mark.parametrize("payload", [
    {"path": "/a"},
    [{"responses": [{"status": 200}]}],
    [{"path": "/a", "responses": []}],
    [{"path": "/a", "responses": [{"status": "ok"}]}],
    [{"path": "/a", "responses": [{"status": 700}]}],
    [{"path": "/a", "responses": ["200"]}],
])
def test_malformed_payloads_are_rejected(payload):
    with pytest.raises(ScenarioError):
        parse_definitions(payload)


def test_unparseable_text_is_rejected():
    with pytest.raises(ScenarioError):
        load_definitions("[{unclosed")


def test_load_file(engine, tmp_path):
    scenario_file = tmp_path / "scenarios.yaml"
    scenario_file.write_text(
        "- path: /flaky\n"
        "  responses:\n"
        "    - status: 503\n"
        "    - status: 200\n"
        "      body: '{\"recovered\": true}'\n"
    )
    assert engine.load_file(str(scenario_file)) == 1
    assert engine.advance("/flaky").status == 503
    assert engine.advance("/flaky").body == '{"recovered": true}'


def test_load_file_ignores_missing_and_broken_files(engine, tmp_path, caplog):
    assert engine.load_file(str(tmp_path / "absent.yaml")) == 0

    broken = tmp_path / "broken.yaml"
    broken.write_text("path: /not-a-list\n")
    assert engine.load_file(str(broken)) == 0
    assert "Failed to parse scenario file" in caplog.text
    assert engine.definitions() == []


def test_to_dict_round_trips_through_parser():
    definition = ScenarioDefinition("/x", (ScenarioResponse(201, "1-2ms", "{}"), ScenarioResponse(500)))
    assert parse_definitions([definition.to_dict()]) == [definition]
