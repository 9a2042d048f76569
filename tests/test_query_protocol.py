"""Tests for the query wire protocol."""

import struct

import pytest

from mcquery.errors import (
    CannotParseIntError,
    InvalidChallengeTokenError,
    InvalidKeyValueSectionError,
    InvalidQueryPacketTypeError,
    InvalidUtf8Error,
    SessionIdMismatchError,
    TruncatedPacketError,
    UnexpectedPacketTypeError,
)
from mcquery.query_protocol import (
    PacketReader,
    QueryPacketType,
    handshake_request,
    mask_session_id,
    parse_basic_stat,
    parse_challenge_token,
    parse_count,
    parse_full_stat,
    stat_request,
    validate_header,
)

FULL_STAT_KV = {
    "hostname": "A Minecraft Server",
    "gametype": "SMP",
    "game_id": "MINECRAFT",
    "version": "1.20.4",
    "plugins": "Paper on 1.20.4: WorldEdit 7.2.15",
    "map": "world",
    "numplayers": "2",
    "maxplayers": "20",
    "hostport": "25565",
    "hostip": "127.0.0.1",
}


def _full_stat_payload(kv: dict, players: list[str], *, terminated=True) -> bytes:
    data = b"splitnum\x00\x80\x00"
    for key, value in kv.items():
        data += key.encode() + b"\x00" + value.encode() + b"\x00"
    data += b"\x00"
    data += b"\x01player_\x00\x00"
    for name in players:
        data += name.encode() + b"\x00"
    if terminated:
        data += b"\x00"
    return data


class TestRequests:
    def test_mask_session_id(self):
        assert mask_session_id(0xFFFFFFFF) == 0x0F0F0F0F
        assert mask_session_id(0x12345678) == 0x02040608

    def test_masked_ids_have_clear_high_nibbles(self):
        for raw in (0, 1, 0x80808080, 0xDEADBEEF, 0xFFFFFFFF):
            assert mask_session_id(raw) & 0xF0F0F0F0 == 0

    def test_handshake_request(self):
        assert handshake_request(0x01020304) == b"\xfe\xfd\x09\x01\x02\x03\x04"

    def test_basic_stat_request(self):
        assert stat_request(1, 9513307) == (
            b"\xfe\xfd\x00\x00\x00\x00\x01\x00\x91\x29\x5b"
        )

    def test_full_stat_request_padding(self):
        basic = stat_request(1, 9513307)
        assert stat_request(1, 9513307, full=True) == basic + b"\x00\x00\x00\x00"

    def test_negative_token(self):
        assert stat_request(1, -1)[-4:] == b"\xff\xff\xff\xff"


class TestPacketReader:
    def test_read_fields(self):
        reader = PacketReader(b"\x09" + struct.pack(">i", -2) + b"\xdd\x63abc\x00")
        assert reader.read_u8() == 9
        assert reader.read_i32() == -2
        assert reader.read_u16_le() == 25565
        assert reader.read_string() == "abc"
        assert reader.remaining == 0

    def test_truncated(self):
        with pytest.raises(TruncatedPacketError):
            PacketReader(b"\x00\x01").read_i32()

    def test_unterminated_string(self):
        with pytest.raises(TruncatedPacketError):
            PacketReader(b"abc").read_string()

    def test_invalid_utf8(self):
        with pytest.raises(InvalidUtf8Error):
            PacketReader(b"\xc3\x28\x00").read_string()


class TestValidateHeader:
    def _reader(self, packet_type: int, session_id: int) -> PacketReader:
        return PacketReader(struct.pack(">Bi", packet_type, session_id))

    def test_valid(self):
        reader = self._reader(9, 0x0F0F0F0F)
        validate_header(reader, QueryPacketType.HANDSHAKE, 0x0F0F0F0F)
        assert reader.remaining == 0

    def test_unknown_type(self):
        with pytest.raises(InvalidQueryPacketTypeError):
            validate_header(self._reader(5, 1), QueryPacketType.HANDSHAKE, 1)

    def test_unexpected_type(self):
        with pytest.raises(UnexpectedPacketTypeError):
            validate_header(self._reader(0, 1), QueryPacketType.HANDSHAKE, 1)

    def test_session_mismatch(self):
        with pytest.raises(SessionIdMismatchError):
            validate_header(self._reader(0, 2), QueryPacketType.STAT, 1)


class TestChallengeToken:
    def test_positive(self):
        assert parse_challenge_token(PacketReader(b"9513307\x00")) == 9513307

    def test_negative(self):
        assert parse_challenge_token(PacketReader(b"-1234\x00")) == -1234

    @pytest.mark.parametrize("token", [b"abc", b"", b"12a", b"4294967296"])
    def test_invalid(self, token):
        with pytest.raises(InvalidChallengeTokenError):
            parse_challenge_token(PacketReader(token + b"\x00"))

    def test_is_an_int_parse_error(self):
        with pytest.raises(CannotParseIntError):
            parse_challenge_token(PacketReader(b"nope\x00"))


class TestBasicStat:
    def test_parse(self):
        payload = (
            b"A Minecraft Server\x00SMP\x00world\x002\x0020\x00"
            + struct.pack("<H", 25565)
            + b"127.0.0.1\x00"
        )
        stat = parse_basic_stat(PacketReader(payload))

        assert stat.motd == "A Minecraft Server"
        assert stat.game_type == "SMP"
        assert stat.map == "world"
        assert stat.num_players == 2
        assert stat.max_players == 20
        assert stat.host_port == 25565
        assert stat.host_ip == "127.0.0.1"

    def test_bad_count(self):
        payload = b"motd\x00SMP\x00world\x00two\x0020\x00\xdd\x63127.0.0.1\x00"
        with pytest.raises(CannotParseIntError):
            parse_basic_stat(PacketReader(payload))

    def test_truncated_port(self):
        with pytest.raises(TruncatedPacketError):
            parse_basic_stat(PacketReader(b"motd\x00SMP\x00world\x002\x0020\x00\xdd"))


class TestFullStat:
    def test_parse(self):
        payload = _full_stat_payload(FULL_STAT_KV, ["barneygale", "Vivalahelvig"])
        stat = parse_full_stat(PacketReader(payload))

        assert stat.motd == "A Minecraft Server"
        assert stat.game_type == "SMP"
        assert stat.game_id == "MINECRAFT"
        assert stat.version == "1.20.4"
        assert stat.plugins == "Paper on 1.20.4: WorldEdit 7.2.15"
        assert stat.map == "world"
        assert stat.num_players == 2
        assert stat.max_players == 20
        assert stat.host_port == 25565
        assert stat.host_ip == "127.0.0.1"
        assert stat.players == ("barneygale", "Vivalahelvig")
        assert stat.extra == {}

    def test_no_players(self):
        stat = parse_full_stat(PacketReader(_full_stat_payload(FULL_STAT_KV, [])))
        assert stat.players == ()

    def test_unterminated_player_list(self):
        payload = _full_stat_payload(FULL_STAT_KV, ["Alice"], terminated=False)
        assert parse_full_stat(PacketReader(payload)).players == ("Alice",)

    def test_extra_keys_kept(self):
        kv = dict(FULL_STAT_KV, whitelist="on")
        stat = parse_full_stat(PacketReader(_full_stat_payload(kv, [])))
        assert stat.extra == {"whitelist": "on"}

    def test_missing_key(self):
        kv = {k: v for k, v in FULL_STAT_KV.items() if k != "hostport"}
        with pytest.raises(InvalidKeyValueSectionError, match="hostport"):
            parse_full_stat(PacketReader(_full_stat_payload(kv, [])))

    def test_bad_numplayers(self):
        kv = dict(FULL_STAT_KV, numplayers="-1")
        with pytest.raises(CannotParseIntError):
            parse_full_stat(PacketReader(_full_stat_payload(kv, [])))

    def test_port_out_of_range(self):
        kv = dict(FULL_STAT_KV, hostport="70000")
        with pytest.raises(CannotParseIntError):
            parse_full_stat(PacketReader(_full_stat_payload(kv, [])))

    def test_truncated_kv_section(self):
        with pytest.raises(TruncatedPacketError):
            parse_full_stat(PacketReader(b"splitnum\x00\x80\x00hostname\x00abc"))


class TestParseCount:
    def test_valid(self):
        assert parse_count("0", "n") == 0
        assert parse_count("123", "n") == 123

    @pytest.mark.parametrize("text", ["", "-1", "+1", " 1", "1.5"])
    def test_invalid(self, text):
        with pytest.raises(CannotParseIntError):
            parse_count(text, "n")
