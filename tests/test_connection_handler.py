#!/usr/bin/env python3
"""
Unit tests for the per-connection state machine in server/chat/connection_handler.py

Each test drives one ConnectionHandler with an in-memory StreamReader and
observes what a pre-registered peer ("bob") receives.
"""

import asyncio
import unittest
from unittest.mock import patch

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from fakes import FakeWriter
from common.constants import MessageTypes
from server.chat.connection_handler import ConnectionHandler, HandlerState
from server.chat.dispatcher import Dispatcher
from server.chat.registry import SessionRegistry


def make_reader(*lines, eof=True, limit=None):
    reader = asyncio.StreamReader(limit=limit) if limit else asyncio.StreamReader()
    for line in lines:
        reader.feed_data(line.encode('utf-8') + b'\n' if isinstance(line, str) else line)
    if eof:
        reader.feed_eof()
    return reader


JOIN_ALICE = '{"Type":"join","From":"alice","Ts":1}'


class HandlerTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.registry = SessionRegistry()
        self.dispatcher = Dispatcher(self.registry)
        self.bob = FakeWriter(peername=('127.0.0.1', 40001))
        await self.registry.register('bob', self.bob)

    async def run_handler(self, reader, writer=None):
        writer = writer or FakeWriter()
        handler = ConnectionHandler(reader, writer, self.registry, self.dispatcher)
        await asyncio.wait_for(handler.run(), timeout=2)
        return handler, writer


class TestHandshake(HandlerTestCase):
    """Test cases for the AWAITING_JOIN state."""

    async def test_eof_before_any_line(self):
        handler, writer = await self.run_handler(make_reader())

        self.assertEqual(handler.state, HandlerState.CLOSED)
        self.assertIsNone(handler.username)
        self.assertEqual(writer.buffer, b'')
        self.assertTrue(writer.closed)
        self.assertEqual(self.bob.write_calls, 0)

    async def test_rejected_first_lines(self):
        bad_first_lines = [
            'this is not json',
            '{"Type":"msg","From":"alice","Text":"hi"}',
            '{"Type":"join","From":"   "}',
            '{"Type":"join"}',
            '{"Type":"nonsense","From":"alice"}',
        ]
        for line in bad_first_lines:
            with self.subTest(line=line):
                handler, writer = await self.run_handler(make_reader(line, eof=False))

                received = writer.envelopes()
                self.assertEqual(len(received), 1)
                self.assertEqual(received[0].type, MessageTypes.SYS)
                self.assertEqual(received[0].text, 'Invalid join')
                self.assertTrue(writer.closed)
                self.assertIsNone(handler.username)
                self.assertEqual(await self.registry.usernames(), ['bob'])
                self.assertEqual(self.bob.write_calls, 0)

    async def test_backlog_then_join_broadcast(self):
        handler, writer = await self.run_handler(make_reader(JOIN_ALICE))

        received = writer.envelopes()
        self.assertEqual([(e.type, e.sender, e.text) for e in received], [
            (MessageTypes.JOIN, 'bob', 'bob (already online)'),
            (MessageTypes.JOIN, 'alice', 'alice joined'),
        ])
        self.assertEqual([(e.type, e.sender) for e in self.bob.envelopes()], [
            (MessageTypes.JOIN, 'alice'),
            (MessageTypes.LEAVE, 'alice'),
        ])

    async def test_duplicate_name_gets_suffix(self):
        handler, writer = await self.run_handler(make_reader('{"Type":"join","From":"bob"}'))

        self.assertEqual(handler.username, 'bob1')
        self.assertEqual(writer.envelopes()[0].sender, 'bob')
        self.assertEqual(writer.envelopes()[0].text, 'bob (already online)')
        self.assertEqual(self.bob.envelopes()[0].sender, 'bob1')

    async def test_username_is_trimmed(self):
        handler, _ = await self.run_handler(make_reader('{"Type":"join","From":"  alice \\t"}'))

        self.assertEqual(handler.username, 'alice')

    async def test_session_registered_while_active(self):
        reader = make_reader(JOIN_ALICE, eof=False)
        handler = ConnectionHandler(reader, FakeWriter(), self.registry, self.dispatcher)
        task = asyncio.create_task(handler.run())

        for _ in range(100):
            if handler.state == HandlerState.ACTIVE:
                break
            await asyncio.sleep(0.01)

        self.assertEqual(handler.state, HandlerState.ACTIVE)
        self.assertIsNotNone(await self.registry.lookup('alice'))

        reader.feed_eof()
        await asyncio.wait_for(task, timeout=2)
        self.assertIsNone(await self.registry.lookup('alice'))


class TestActive(HandlerTestCase):
    """Test cases for routing in the ACTIVE state."""

    def bob_received(self, msg_type):
        return [e for e in self.bob.envelopes() if e.type == msg_type]

    async def test_sender_and_timestamp_are_overwritten(self):
        with patch('server.chat.connection_handler.current_timestamp', return_value=1700000123):
            await self.run_handler(make_reader(
                JOIN_ALICE,
                '{"Type":"msg","From":"mallory","Text":"hi","Ts":42}',
            ))

        chats = self.bob_received(MessageTypes.MSG)
        self.assertEqual(len(chats), 1)
        self.assertEqual(chats[0].sender, 'alice')
        self.assertEqual(chats[0].text, 'hi')
        self.assertEqual(chats[0].ts, 1700000123)

    async def test_msg_reaches_sender_too(self):
        _, writer = await self.run_handler(make_reader(JOIN_ALICE, '{"Type":"msg","Text":"echo"}'))

        self.assertIn('echo', [e.text for e in writer.envelopes() if e.type == MessageTypes.MSG])

    async def test_malformed_lines_are_dropped(self):
        _, writer = await self.run_handler(make_reader(
            JOIN_ALICE,
            '{broken',
            '{"Type":"whisper","Text":"x"}',
            '',
            '{"Type":"msg","Text":"after"}',
        ))

        self.assertEqual([e.text for e in self.bob_received(MessageTypes.MSG)], ['after'])
        self.assertNotIn(MessageTypes.SYS, [e.type for e in writer.envelopes()])

    async def test_typing_signals_are_relayed(self):
        await self.run_handler(make_reader(
            JOIN_ALICE,
            '{"Type":"typing"}',
            '{"Type":"typing"}',
            '{"Type":"stop_typing"}',
        ))

        relayed = [e.type for e in self.bob.envelopes()
                   if e.type in (MessageTypes.TYPING, MessageTypes.STOP_TYPING)]
        self.assertEqual(relayed, ['typing', 'typing', 'stop_typing'])
        self.assertEqual(self.bob_received(MessageTypes.TYPING)[0].sender, 'alice')

    async def test_pm_to_existing_user(self):
        _, writer = await self.run_handler(make_reader(
            JOIN_ALICE, '{"Type":"pm","To":"bob","Text":"psst"}'
        ))

        pms = self.bob_received(MessageTypes.PM)
        self.assertEqual(len(pms), 1)
        self.assertEqual((pms[0].sender, pms[0].to, pms[0].text), ('alice', 'bob', 'psst'))
        self.assertEqual([e for e in writer.envelopes() if e.type == MessageTypes.PM], [])

    async def test_pm_to_unknown_user(self):
        _, writer = await self.run_handler(make_reader(
            JOIN_ALICE, '{"Type":"pm","To":"carol","Text":"hey"}'
        ))

        notices = [e for e in writer.envelopes() if e.type == MessageTypes.SYS]
        self.assertEqual([e.text for e in notices], ["User 'carol' not found"])
        self.assertEqual(self.bob_received(MessageTypes.SYS), [])
        self.assertEqual(self.bob_received(MessageTypes.PM), [])

    async def test_join_and_sys_are_ignored(self):
        await self.run_handler(make_reader(
            JOIN_ALICE,
            '{"Type":"join","From":"other"}',
            '{"Type":"sys","Text":"fake notice"}',
        ))

        self.assertEqual([(e.type, e.sender) for e in self.bob.envelopes()], [
            (MessageTypes.JOIN, 'alice'),
            (MessageTypes.LEAVE, 'alice'),
        ])

    async def test_leave_closes_without_eof(self):
        handler, writer = await self.run_handler(make_reader(
            JOIN_ALICE,
            '{"Type":"leave"}',
            '{"Type":"msg","Text":"too late"}',
            eof=False,
        ))

        self.assertEqual(handler.state, HandlerState.CLOSED)
        self.assertTrue(writer.closed)
        self.assertEqual(self.bob_received(MessageTypes.MSG), [])
        self.assertEqual(len(self.bob_received(MessageTypes.LEAVE)), 1)
        self.assertEqual(await self.registry.usernames(), ['bob'])

    async def test_oversized_line_is_a_disconnect(self):
        handler, _ = await self.run_handler(make_reader(
            JOIN_ALICE, b'x' * 500, eof=False, limit=64
        ))

        self.assertEqual(handler.state, HandlerState.CLOSED)
        self.assertEqual(len(self.bob_received(MessageTypes.LEAVE)), 1)
        self.assertIsNone(await self.registry.lookup('alice'))

    async def test_dead_peer_does_not_stop_sender(self):
        dead = FakeWriter(fail=True)
        await self.registry.register('zombie', dead)

        await self.run_handler(make_reader(JOIN_ALICE, '{"Type":"msg","Text":"anyone?"}'))

        self.assertEqual([e.text for e in self.bob_received(MessageTypes.MSG)], ['anyone?'])
        self.assertIsNotNone(await self.registry.lookup('zombie'))


if __name__ == '__main__':
    unittest.main()
