import json

from fastapi.testclient import TestClient

from recallbridge.main import app


def test_metrics_endpoint_counts_requests_and_bot_events():
    with TestClient(app) as client:
        client.get("/health")
        with client.websocket_connect("/recall-events") as bot:
            bot.receive_json()
            bot.send_text(json.dumps({"event": "transcript.data", "data": {}}))
            bot.receive_json()
        response = client.get("/metrics")

    assert response.status_code == 200
    assert b"recallbridge_requests_total" in response.content
    assert b'recallbridge_bot_events_total{kind="transcript"}' in response.content
    assert b"recallbridge_subscribers" in response.content
