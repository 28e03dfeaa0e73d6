from client.sse_client import SSEFrameDecoder


def test_frame_split_across_chunks():
    decoder = SSEFrameDecoder()
    assert decoder.feed('data: {"type":"conn') == []
    assert decoder.feed('ected","listId":7}\n') == [{"type": "connected", "listId": 7}]
    assert decoder.feed("\n") == []
    assert decoder.pending == ""


def test_multiple_frames_in_one_chunk_and_crlf():
    decoder = SSEFrameDecoder()
    chunk = 'data: {"a":1}\r\n\r\ndata: {"b":2}\n\ndata: {"c"'
    assert decoder.feed(chunk) == [{"a": 1}, {"b": 2}]
    assert decoder.feed(":3}\n\n") == [{"c": 3}]


def test_comments_and_other_fields_are_ignored():
    decoder = SSEFrameDecoder()
    assert decoder.feed(": ping - 2024-01-01 00:00:00\n\nevent: message\nid: 4\nretry: 100\n\n") == []


def test_malformed_json_is_skipped_without_aborting():
    decoder = SSEFrameDecoder()
    messages = decoder.feed('data: {broken\n\ndata: {"type":"item_deleted","itemId":1}\n\n')
    assert messages == [{"type": "item_deleted", "itemId": 1}]


def test_data_without_space_after_colon():
    assert SSEFrameDecoder().feed('data:{"x":1}\n') == [{"x": 1}]
