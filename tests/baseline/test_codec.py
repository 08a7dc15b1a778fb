"""Tests for trquote.engine.codec — wire envelopes and batch decoding."""
import json

import pytest

from trquote.engine import codec
from trquote.engine.codec import (
    DataMessage,
    DecodeError,
    LoginResponse,
    Ping,
    StatusMessage,
)


class TestEncode:
    def test_login(self):
        frame = json.loads(codec.encodeLogin("user", "256", "127.0.0.1", 0))
        assert frame == {
            "Id": 0,
            "Domain": "Login",
            "Key": {
                "Name": "user",
                "Elements": {"ApplicationId": "256", "Position": "127.0.0.1"},
            },
        }

    def test_login_with_token_uses_authn_token_key(self):
        frame = json.loads(codec.encodeLogin("user", "256", "10.0.0.1", 3, authToken="tok"))
        assert frame["Id"] == 3
        assert frame["Domain"] == "Login"
        assert frame["Key"]["NameType"] == "AuthnToken"
        assert "Name" not in frame["Key"]
        assert frame["Key"]["Elements"] == {
            "AuthenticationToken": "tok",
            "ApplicationId": "256",
            "Position": "10.0.0.1",
        }

    @pytest.mark.parametrize("streaming", [True, False])
    def test_subscribe(self, streaming):
        frame = json.loads(codec.encodeSubscribe(4, "TRI.N", "ELEKTRON_EDGE", streaming))
        assert frame == {
            "Id": 4,
            "Streaming": streaming,
            "Key": {"Name": "TRI.N", "Service": "ELEKTRON_EDGE"},
        }

    def test_subscribe_without_service_omits_key(self):
        frame = json.loads(codec.encodeSubscribe(1, "AAPL.O", ""))
        assert frame["Key"] == {"Name": "AAPL.O"}

    def test_close(self):
        assert json.loads(codec.encodeClose(9)) == {"Id": 9, "Type": "Close"}

    def test_pong(self):
        assert json.loads(codec.encodePong()) == {"Type": "Pong"}


class TestDecodeBatch:
    def test_classifies_each_kind(self):
        raw = json.dumps(
            [
                {"Type": "Ping"},
                {"Domain": "Login", "Id": 0, "Type": "Refresh", "State": {"Data": "Ok", "Stream": "Open"}},
                {"Type": "Status", "Id": 2, "State": {"Stream": "Closed", "Text": "x"}},
                {"Type": "Refresh", "Id": 3, "Key": {"Name": "TRI.N"}, "Fields": {"BID": 1.5},
                 "State": {"Stream": "Open", "Data": "Ok"}},
                {"Type": "Update", "Id": 3, "Fields": {"ASK": 1.6}},
            ]
        )
        batch = codec.decodeBatch(raw)

        assert [type(m) for m in batch] == [Ping, LoginResponse, StatusMessage, DataMessage, DataMessage]
        assert batch[1].ok
        assert batch[2].id == 2 and batch[2].closed
        assert batch[3].type == "Refresh" and batch[3].fields == {"BID": 1.5}
        assert batch[4].type == "Update" and batch[4].id == 3

    def test_ping_wins_over_login_domain(self):
        (msg,) = codec.decodeBatch('[{"Type": "Ping", "Domain": "Login"}]')
        assert isinstance(msg, Ping)

    def test_login_domain_wins_over_status_type(self):
        (msg,) = codec.decodeBatch(
            '[{"Type": "Status", "Domain": "Login", "State": {"Data": "Suspect"}}]'
        )
        assert isinstance(msg, LoginResponse)
        assert not msg.ok

    def test_raw_frame_is_preserved(self):
        frame = {"Type": "Update", "Id": 5, "UpdateType": "ClosingRun", "Fields": {"TRDPRC_1": 10}}
        (msg,) = codec.decodeBatch(json.dumps([frame]))
        assert msg.raw == frame

    def test_nonstreaming_refresh_is_snapshot_complete(self):
        (msg,) = codec.decodeBatch(
            '[{"Type": "Refresh", "Id": 1, "State": {"Stream": "NonStreaming", "Data": "Ok"}}]'
        )
        assert msg.snapshotComplete

    def test_update_is_never_snapshot_complete(self):
        (msg,) = codec.decodeBatch(
            '[{"Type": "Update", "Id": 1, "State": {"Stream": "NonStreaming"}}]'
        )
        assert not msg.snapshotComplete

    def test_non_integer_id_decodes_as_none(self):
        (msg,) = codec.decodeBatch('[{"Type": "Status", "Id": "7", "State": {"Stream": "Closed"}}]')
        assert msg.id is None

    def test_empty_array_is_empty_batch(self):
        assert codec.decodeBatch("[]") == []

    def test_accepts_bytes(self):
        (msg,) = codec.decodeBatch(b'[{"Type": "Ping"}]')
        assert isinstance(msg, Ping)

    @pytest.mark.parametrize(
        "raw",
        ["not json", "", "[{", '{"Type": "Ping"}', "42", '[{"Type": "Ping"}, 3]'],
    )
    def test_malformed_raises_decode_error(self, raw):
        with pytest.raises(DecodeError):
            codec.decodeBatch(raw)

    def test_invalid_utf8_bytes_raise_decode_error(self):
        with pytest.raises(DecodeError):
            codec.decodeBatch(b"\xff\xfe not utf8")

    def test_decode_error_carries_parse_message(self):
        with pytest.raises(DecodeError) as exc:
            codec.decodeBatch("not json")
        assert str(exc.value)
        assert isinstance(exc.value.__cause__, ValueError)
