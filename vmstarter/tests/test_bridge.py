"""
File bridge tests.

Author: YSNRFD
Version: 1.0.0
"""

import asyncio
import json
import unittest

from vmstarter.exceptions import ErrorKind, ResourceNotFoundError
from vmstarter.filesystem.bridge import FileBridge, PendingRead
from vmstarter.filesystem.memfs import MemoryFilesystem
from vmstarter.tests.fakes import FakeFetcher


BASE = 'http://fs.test/'


async def drain(turns: int = 5) -> None:
    for _ in range(turns):
        await asyncio.sleep(0)


class TestPendingRead(unittest.TestCase):

    def test_fires_once(self):
        calls = []
        pending = PendingRead(ino=3, path='/a', callback=lambda e, d: calls.append((e, d)))

        self.assertTrue(pending.fire(b'x'))
        self.assertFalse(pending.fire(b'y'))
        self.assertEqual(calls, [(None, b'x')])


class TestCreateFile(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.fs = MemoryFilesystem()
        self.fs.makedirs('/tmp')
        self.bridge = FileBridge(self.fs)

    async def test_create_then_read(self):
        results = []
        self.bridge.create_file('/tmp/x.txt', b'hello', results.append)
        await drain()
        self.assertEqual(results, [None])

        reads = []
        self.bridge.read_file('/tmp/x.txt', lambda e, d: reads.append((e, d)))
        await drain()
        self.assertEqual(reads, [(None, b'hello')])

    async def test_callback_is_deferred(self):
        results = []
        self.bridge.create_file('/tmp/x.txt', b'hello', results.append)

        # The write itself is synchronous, the callback is not
        self.assertIsNotNone(self.fs.search_path('/tmp/x.txt').id)
        self.assertEqual(results, [])

        await drain()
        self.assertEqual(results, [None])

    async def test_missing_parent(self):
        results = []
        stats_before = self.fs.get_stats()

        self.bridge.create_file('/missing_dir/x.txt', b'data', results.append)
        await drain()

        self.assertEqual(len(results), 1)
        self.assertIsInstance(results[0], ResourceNotFoundError)
        self.assertIs(results[0].kind, ErrorKind.RESOURCE_NOT_FOUND)
        self.assertEqual(self.fs.get_stats(), stats_before)

    async def test_empty_leaf(self):
        results = []
        stats_before = self.fs.get_stats()

        self.bridge.create_file('/tmp/', b'data', results.append)
        await drain()

        self.assertIsInstance(results[0], ResourceNotFoundError)
        self.assertEqual(self.fs.get_stats(), stats_before)

    async def test_dot_segments_as_leaf(self):
        self.fs.makedirs('/tmp/x')
        self.bridge.create_file('/tmp/y.txt', b'y')
        await drain()
        stats_before = self.fs.get_stats()

        results = []
        for path in ('/tmp/y.txt/.', '/tmp/x/..'):
            self.bridge.create_file(path, b'data', results.append)
        await drain()

        self.assertEqual(len(results), 2)
        for error in results:
            self.assertIsInstance(error, ResourceNotFoundError)
        self.assertEqual(self.fs.get_stats(), stats_before)
        self.assertEqual(self.fs.search_path('/tmp/y.txt').name, 'y.txt')
        self.assertIsNone(self.fs.get_inode(0).get_entry('..'))
        self.assertIsNone(self.fs.get_inode(self.fs.search_path('/tmp').id).get_entry('.'))

    async def test_create_over_directory(self):
        self.fs.makedirs('/tmp/x')
        stats_before = self.fs.get_stats()

        results = []
        self.bridge.create_file('/tmp/x', b'data', results.append)
        self.assertEqual(results, [])
        await drain()

        self.assertEqual(len(results), 1)
        self.assertIsInstance(results[0], ResourceNotFoundError)
        self.assertTrue(self.fs.is_directory(self.fs.search_path('/tmp/x').id))
        self.assertEqual(self.fs.get_stats(), stats_before)

    async def test_without_callback(self):
        self.bridge.create_file('/missing_dir/x.txt', b'data')
        self.bridge.create_file('/tmp/y.txt', b'data')
        await drain()
        self.assertEqual(self.fs.inode_data(self.fs.search_path('/tmp/y.txt').id), b'data')

    async def test_no_filesystem(self):
        results = []
        FileBridge().create_file('/tmp/x.txt', b'data', results.append)
        await drain()
        self.assertIsInstance(results[0], ResourceNotFoundError)


class TestReadFile(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.fetcher = FakeFetcher({BASE + 'etc/motd': b'welcome'})
        self.fs = MemoryFilesystem(BASE, self.fetcher)
        self.fs.load_manifest(json.dumps({
            'version': 1,
            'entries': [{'path': '/etc/motd', 'type': 'file', 'size': 7}],
        }))
        self.bridge = FileBridge(self.fs)

    async def test_not_found(self):
        reads = []
        self.bridge.read_file('/nope.txt', lambda e, d: reads.append((e, d)))

        self.assertEqual(reads, [])
        await drain()

        self.assertEqual(len(reads), 1)
        error, data = reads[0]
        self.assertIsInstance(error, ResourceNotFoundError)
        self.assertIsNone(data)

    async def test_directory_is_not_readable(self):
        reads = []
        self.bridge.read_file('/etc', lambda e, d: reads.append((e, d)))
        await drain()

        self.assertEqual(len(reads), 1)
        error, data = reads[0]
        self.assertIsInstance(error, ResourceNotFoundError)
        self.assertIsNone(data)
        self.assertEqual(self.bridge.pending_reads, 0)

    async def test_content_still_on_server(self):
        reads = []
        self.bridge.read_file('/etc/motd', lambda e, d: reads.append((e, d)))
        self.assertEqual(self.bridge.pending_reads, 1)

        await drain(10)

        self.assertEqual(reads, [(None, b'welcome')])
        self.assertEqual(self.bridge.pending_reads, 0)

    async def test_concurrent_reads_fire_once_each(self):
        first, second = [], []
        self.bridge.read_file('/etc/motd', lambda e, d: first.append(d))
        self.bridge.read_file('/etc/motd', lambda e, d: second.append(d))

        await drain(10)
        await drain(10)

        self.assertEqual(first, [b'welcome'])
        self.assertEqual(second, [b'welcome'])
        self.assertEqual(len(self.fetcher.fetched()), 1)

    async def test_coroutine_helpers(self):
        self.assertEqual(await self.bridge.read('/etc/motd'), b'welcome')

        await self.bridge.write('/etc/hosts', b'127.0.0.1 localhost')
        self.assertEqual(await self.bridge.read('/etc/hosts'), b'127.0.0.1 localhost')

        with self.assertRaises(ResourceNotFoundError):
            await self.bridge.read('/etc/missing')
        with self.assertRaises(ResourceNotFoundError):
            await self.bridge.write('/var/log/x', b'')


if __name__ == '__main__':
    unittest.main()
