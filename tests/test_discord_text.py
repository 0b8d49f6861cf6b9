from __future__ import annotations

import unittest

try:
    from misc.discord_text import chunk_text
    from misc.discord_text import send_chunked
except ModuleNotFoundError:
    chunk_text = None


@unittest.skipIf(chunk_text is None, "discord.py not installed")
class ChunkTextTests(unittest.TestCase):
    def test_short_text_is_one_chunk(self):
        self.assertEqual(chunk_text("hello"), ["hello"])

    def test_prefers_paragraph_breaks(self):
        text = ("a" * 30) + "\n\n" + ("b" * 30)
        self.assertEqual(chunk_text(text, limit=40), ["a" * 30, "b" * 30])

    def test_hard_split_without_whitespace(self):
        chunks = chunk_text("x" * 95, limit=40)
        self.assertEqual([len(c) for c in chunks], [40, 40, 15])

    def test_every_chunk_respects_limit(self):
        text = " ".join(f"word{i}" for i in range(2000))
        self.assertTrue(all(len(c) <= 1900 for c in chunk_text(text)))


@unittest.skipIf(chunk_text is None, "discord.py not installed")
class SendChunkedTests(unittest.IsolatedAsyncioTestCase):
    async def test_sends_each_part_and_skips_empty(self):
        class FakeChannel:
            def __init__(self):
                self.sent: list[str] = []

            async def send(self, text):
                self.sent.append(text)

        channel = FakeChannel()
        await send_chunked(channel, "x" * 3000)
        self.assertEqual(len(channel.sent), 2)

        empty = FakeChannel()
        await send_chunked(empty, "")
        self.assertEqual(empty.sent, [])


if __name__ == "__main__":
    unittest.main()
