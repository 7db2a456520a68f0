"""
Starter boot sequence tests.

Author: YSNRFD
Version: 1.0.0
"""

import asyncio
import json
import tempfile
import unittest
from pathlib import Path

from vmstarter.core.bus import EventBus, TOPIC_FATAL, TOPIC_READY, TOPIC_STARTED, TOPIC_STOPPED
from vmstarter.core.config_loader import LoaderConfig
from vmstarter.core.starter import BootStage, Starter, boot_system
from vmstarter.exceptions import (
    BootFailureError,
    ConfigurationError,
    ErrorKind,
    LoadTransportError,
    ResourceNotFoundError,
)
from vmstarter.filesystem.memfs import MemoryFilesystem
from vmstarter.loading.buffers import RangeFetchBuffer, WholeResourceBuffer
from vmstarter.loading.loader import TOPIC_ERROR, TOPIC_PROGRESS
from vmstarter.tests.fakes import FakeFetcher, FakeMachine


H = 'http://images.test/'
MANIFEST = json.dumps({
    'version': 1,
    'entries': [
        {'path': '/etc', 'type': 'dir'},
        {'path': '/etc/issue', 'type': 'file', 'size': 6},
    ],
})


async def drain(turns: int = 10) -> None:
    for _ in range(turns):
        await asyncio.sleep(0)


class StarterTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.fetcher = FakeFetcher({
            H + 'bios.bin': b'B' * 16,
            H + 'vga.bin': b'V' * 8,
            H + 'hda.img': b'D' * 64,
            H + 'state.bin': b'snapshot',
            H + 'fs.json': MANIFEST.encode(),
            H + 'fs/etc/issue': b'Linux\n',
        })
        self.machine = FakeMachine()
        self.bus = EventBus()
        self.events = []
        for topic in (TOPIC_READY, TOPIC_FATAL, TOPIC_ERROR, TOPIC_STARTED, TOPIC_STOPPED):
            self.bus.register(topic, lambda data, topic=topic: self.events.append((topic, data)))

    def starter(self, options, **kwargs):
        kwargs.setdefault('fetcher', self.fetcher)
        kwargs.setdefault('bus', self.bus)
        return Starter(options, self.machine, **kwargs)

    def topics(self):
        return [topic for topic, _ in self.events]


class TestBoot(StarterTestCase):

    async def test_full_boot(self):
        starter = self.starter({
            'bios': {'url': H + 'bios.bin'},
            'vga_bios': {'url': H + 'vga.bin'},
            'hda': {'url': H + 'hda.img', 'async': True},
            'initial_state': {'url': H + 'state.bin'},
            'filesystem': {'basefs': H + 'fs.json', 'baseurl': H + 'fs/'},
            'memory_size': 128 * 1024 * 1024,
        })

        result = await starter.boot()

        self.assertTrue(result.success, result.message)
        self.assertIs(result.stage, BootStage.COMPLETE)
        self.assertIsNone(result.error)

        settings = self.machine.settings
        self.assertEqual(settings.bios, b'B' * 16)
        self.assertEqual(settings.vga_bios, b'V' * 8)
        self.assertIsInstance(settings.hda, RangeFetchBuffer)
        self.assertEqual(settings.memory_size, 128 * 1024 * 1024)
        self.assertIs(settings.fs9p, starter.filesystem)
        self.assertIsInstance(starter.filesystem, MemoryFilesystem)

        self.assertEqual(self.machine.calls, ['init', 'restore_state'])
        self.assertEqual(self.machine.restored, [b'snapshot'])
        self.assertEqual(self.topics(), [TOPIC_READY])
        self.assertFalse(starter.is_running())

    async def test_autostart(self):
        starter = self.starter({'bios': {'buffer': b'bios'}, 'autostart': True})
        result = await starter.boot()

        self.assertTrue(result.success)
        self.assertEqual(self.machine.calls, ['init', 'run'])
        self.assertEqual(self.topics(), [TOPIC_READY, TOPIC_STARTED])
        self.assertTrue(starter.is_running())

    async def test_ready_after_filesystem(self):
        seen = []

        def on_ready(_):
            info = starter.filesystem.search_path('/etc/issue')
            seen.append(info.id is not None)

        starter = self.starter({
            'filesystem': {'basefs': H + 'fs.json', 'baseurl': H + 'fs/'},
        })
        starter.add_listener(TOPIC_READY, on_ready)
        await starter.boot()

        self.assertEqual(seen, [True])

    async def test_progress_events(self):
        progress = []
        starter = self.starter({
            'bios': {'url': H + 'bios.bin'},
            'hda': {'url': H + 'hda.img'},
        })
        starter.add_listener(TOPIC_PROGRESS, progress.append)
        await starter.boot()

        self.assertEqual({p.file_index for p in progress}, {0, 1})
        self.assertTrue(all(p.file_count == 2 for p in progress))
        self.assertIsInstance(starter.settings.hda, WholeResourceBuffer)

    async def test_load_failure(self):
        starter = self.starter({
            'bios': {'url': H + 'bios.bin'},
            'hda': {'url': H + 'missing.img'},
            'initial_state': {'url': H + 'state.bin'},
        })

        result = await starter.boot()

        self.assertFalse(result.success)
        self.assertIs(result.stage, BootStage.FAILED)
        self.assertIs(starter.failed_stage, BootStage.RESOURCE_LOAD)
        self.assertIsInstance(result.error, LoadTransportError)
        self.assertIs(result.error.kind, ErrorKind.LOAD_TRANSPORT_FAILURE)

        self.assertEqual(self.machine.calls, [])
        self.assertNotIn(('fetch', H + 'state.bin'), self.fetcher.calls)
        self.assertEqual(self.topics(), [TOPIC_ERROR, TOPIC_FATAL])
        self.assertEqual(self.events[0][1]['name'], 'hda')

    async def test_machine_failure(self):
        self.machine.fail_on = 'init'
        starter = self.starter({'bios': {'buffer': b'bios'}})

        result = await starter.boot()

        self.assertFalse(result.success)
        self.assertIs(starter.failed_stage, BootStage.MACHINE_INIT)
        self.assertIsInstance(result.error, RuntimeError)
        self.assertEqual(self.topics(), [TOPIC_FATAL])

    async def test_boot_runs_once(self):
        starter = self.starter({})
        await starter.boot()
        with self.assertRaises(BootFailureError):
            await starter.boot()
        self.assertEqual(self.machine.calls, ['init'])
        self.assertEqual(self.topics(), [TOPIC_READY])

    def test_configuration_violation_at_construction(self):
        with self.assertRaises(ConfigurationError):
            self.starter({'filesystem': {'basefs': H + 'fs.json'}})
        self.assertEqual(self.machine.calls, [])

    async def test_local_images(self):
        with tempfile.TemporaryDirectory() as tmp:
            bios = Path(tmp) / 'bios.bin'
            bios.write_bytes(b'local-bios')
            disk = Path(tmp) / 'fda.img'
            disk.write_bytes(b'F' * 2048)

            starter = self.starter(
                {'bios': {'path': str(bios)}, 'fda': {'path': str(disk)}},
                loader_config=LoaderConfig(lazy_threshold=1024)
            )
            result = await starter.boot()

            self.assertTrue(result.success, result.message)
            self.assertEqual(self.machine.settings.bios, b'local-bios')
            self.assertIsInstance(self.machine.settings.fda, RangeFetchBuffer)
            self.assertEqual(await self.machine.settings.fda.read(1000, 4), b'FFFF')
            self.assertEqual(self.fetcher.calls, [])


class TestPassThrough(StarterTestCase):

    async def asyncSetUp(self):
        self.starter_ = self.starter({
            'bios': {'buffer': b'bios'},
            'filesystem': {'basefs': H + 'fs.json', 'baseurl': H + 'fs/'},
        })
        result = await self.starter_.boot()
        self.assertTrue(result.success, result.message)
        self.events.clear()
        self.machine.calls.clear()

    async def test_run_stop(self):
        s = self.starter_
        s.run()
        s.run()
        self.assertTrue(s.is_running())
        s.stop()
        s.stop()
        self.assertFalse(s.is_running())

        self.assertEqual(self.machine.calls, ['run', 'stop'])
        self.assertEqual(self.topics(), [TOPIC_STARTED, TOPIC_STOPPED])

    async def test_restart(self):
        self.starter_.restart()
        self.assertEqual(self.machine.calls, ['stop', 'run'])

    async def test_requires_boot(self):
        starter = Starter({}, FakeMachine(), fetcher=self.fetcher)
        with self.assertRaises(BootFailureError):
            starter.run()

    async def test_save_state_deferred(self):
        saved = []
        self.starter_.save_state(lambda error, state: saved.append((error, state)))
        self.assertEqual(saved, [])

        await drain()

        self.assertEqual(saved, [(None, b'saved-state')])

    async def test_save_state_error(self):
        self.machine.fail_on = 'save_state'
        saved = []
        self.starter_.save_state(lambda error, state: saved.append((error, state)))
        await drain()

        error, state = saved[0]
        self.assertIsInstance(error, RuntimeError)
        self.assertIsNone(state)

    async def test_restore_state(self):
        self.starter_.restore_state(bytearray(b'snap'))
        self.assertEqual(self.machine.restored, [b'snap'])

    async def test_listeners(self):
        calls = []
        self.starter_.add_listener('custom', calls.append)
        self.bus.send('custom', 1)
        self.assertTrue(self.starter_.remove_listener('custom', calls.append))
        self.bus.send('custom', 2)
        self.assertEqual(calls, [1])

    async def test_files(self):
        results = []
        self.starter_.create_file('/etc/hostname', b'vm', results.append)
        await drain()
        self.assertEqual(results, [None])

        reads = []
        self.starter_.read_file('/etc/issue', lambda e, d: reads.append((e, d)))
        self.starter_.read_file('/etc/nope', lambda e, d: reads.append((e, d)))
        await drain(20)

        self.assertEqual(len(reads), 2)
        not_found = [r for r in reads if r[0] is not None]
        self.assertIsInstance(not_found[0][0], ResourceNotFoundError)
        self.assertIn((None, b'Linux\n'), reads)

    async def test_close(self):
        self.starter_.run()
        await self.starter_.close()
        self.assertFalse(self.machine.running)
        # Injected fetchers belong to the caller
        self.assertFalse(self.fetcher.closed)

    async def test_close_owned_fetcher(self):
        starter = Starter({}, FakeMachine())
        await starter.boot()
        await starter.close()


class TestBootSystem(unittest.IsolatedAsyncioTestCase):

    async def test_from_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            Path(tmp, 'bios.bin').write_bytes(b'file-bios')
            config = Path(tmp, 'machine.json')
            config.write_text(json.dumps({
                'machine': {'memory_size': 16 * 1024 * 1024, 'autostart': True},
                'images': {'bios': {'buffer': 'bios.bin'}},
                'logging': {'level': 'WARNING'},
            }))

            machine = FakeMachine()
            result, starter = await boot_system(str(config), machine)
            try:
                self.assertTrue(result.success, result.message)
                self.assertEqual(machine.settings.bios, b'file-bios')
                self.assertEqual(machine.settings.memory_size, 16 * 1024 * 1024)
                self.assertTrue(machine.running)
            finally:
                await starter.close()


if __name__ == '__main__':
    unittest.main()
