from chatbridge.domain.chat_ids import is_group_chat, normalize_chat_id, number_of, phone_from_user_id


def test_normalize_chat_id():
    assert normalize_chat_id("1234567890") == "1234567890@s.whatsapp.net"
    assert normalize_chat_id("1234567890@g.us") == "1234567890@g.us"
    assert normalize_chat_id("1234567890@s.whatsapp.net") == "1234567890@s.whatsapp.net"


def test_group_detection():
    assert is_group_chat("120363000000000001@g.us")
    assert not is_group_chat("5511999990000@s.whatsapp.net")


def test_number_and_phone():
    assert number_of("5511999990000@s.whatsapp.net") == "5511999990000"
    assert phone_from_user_id("5511999990000:12@s.whatsapp.net") == "5511999990000"
    assert phone_from_user_id("5511999990000@s.whatsapp.net") == "5511999990000"
    assert phone_from_user_id(None) is None
