"""
Settings assembler tests.

Author: YSNRFD
Version: 1.0.0
"""

import dataclasses
import unittest

from vmstarter.core.settings import (
    DEFAULT_BOOT_ORDER,
    DEFAULT_MEMORY_SIZE,
    DEFAULT_VGA_MEMORY_SIZE,
    MachineSettings,
    SettingsAssembler,
    SettingsBuilder,
)
from vmstarter.exceptions import ConfigurationError, UnknownResourceError
from vmstarter.loading.buffers import InMemoryBuffer, RangeFetchBuffer, WholeResourceBuffer
from vmstarter.loading.loader import SequentialLoader
from vmstarter.loading.sources import InMemory, LoadMode, LocalFile, RemoteRef
from vmstarter.tests.fakes import FakeFetcher


MiB = 1024 * 1024


class TestBuildRequests(unittest.TestCase):
    """Requests come out in slot order with eager rules applied."""

    def test_slot_order(self):
        options = {
            'initial_state': {'url': 'http://h/state.bin'},
            'hda': {'url': 'http://h/hda.img'},
            'cdrom': {'url': 'http://h/cd.iso'},
            'bios': {'buffer': b'bios'},
            'fdb': {'path': '/tmp/fdb.img'},
            'vga_bios': {'url': 'http://h/vga.bin'},
        }
        names = [r.name for r in SettingsAssembler(options).requests]
        self.assertEqual(names, ['bios', 'vga_bios', 'cdrom', 'hda', 'fdb', 'initial_state'])

    def test_eager_forces_whole(self):
        options = {
            'bios': {'url': 'http://h/bios.bin', 'async': True},
            'initial_state': {'url': 'http://h/state.bin', 'size': 64 * MiB},
        }
        requests = SettingsAssembler(options).requests

        for request in requests:
            self.assertTrue(request.eager_required)
            self.assertIs(request.mode, LoadMode.WHOLE)

    def test_async_preference_for_disks(self):
        options = {
            'hda': {'url': 'http://h/hda.img', 'async': True},
            'hdb': {'url': 'http://h/hdb.img', 'async': False},
            'cdrom': {'url': 'http://h/cd.iso'},
        }
        modes = {r.name: r.mode for r in SettingsAssembler(options).requests}
        self.assertEqual(modes, {
            'hda': LoadMode.RANGE,
            'hdb': LoadMode.WHOLE,
            'cdrom': LoadMode.AUTO,
        })

    def test_empty_specs_skipped(self):
        options = {'bios': None, 'hda': {}, 'fda': {'async': True}}
        self.assertEqual(SettingsAssembler(options).requests, [])

    def test_direct_sources(self):
        options = {'bios': b'raw', 'hda': LocalFile('/tmp/hda.img')}
        requests = SettingsAssembler(options).requests
        self.assertEqual(requests[0].source, InMemory(b'raw'))
        self.assertEqual(requests[1].source, LocalFile('/tmp/hda.img'))

    def test_unsupported_spec(self):
        with self.assertRaises(TypeError):
            SettingsAssembler({'hda': 42})

    def test_filesystem_manifest(self):
        options = {
            'hda': {'url': 'http://h/hda.img'},
            'filesystem': {'basefs': 'http://h/fs.json', 'baseurl': 'http://h/fs/'},
        }
        requests = SettingsAssembler(options).requests

        manifest = requests[-1]
        self.assertEqual(manifest.name, 'fs9p_json')
        self.assertEqual(manifest.source, RemoteRef('http://h/fs.json'))
        self.assertTrue(manifest.as_text)
        self.assertTrue(manifest.eager_required)

    def test_filesystem_requires_baseurl(self):
        with self.assertRaises(ConfigurationError):
            SettingsAssembler({'filesystem': {'basefs': 'http://h/fs.json'}})

    def test_filesystem_without_manifest(self):
        requests = SettingsAssembler({'filesystem': {'baseurl': 'http://h/fs/'}}).requests
        self.assertEqual(requests, [])


class TestPlan(unittest.TestCase):

    def test_strategies(self):
        fetcher = FakeFetcher()
        options = {
            'bios': {'buffer': b'bios'},
            'hda': {'url': 'http://h/hda.img', 'size': 32 * MiB},
            'hdb': {'url': 'http://h/hdb.img', 'size': 1 * MiB},
            'filesystem': {'basefs': 'http://h/fs.json', 'baseurl': 'http://h/fs/'},
        }
        items = {item.name: item for item in SettingsAssembler(options).plan(fetcher)}

        self.assertIsInstance(items['bios'].strategy, InMemoryBuffer)
        self.assertIsInstance(items['hda'].strategy, RangeFetchBuffer)
        self.assertIsInstance(items['hdb'].strategy, WholeResourceBuffer)
        self.assertIsNone(items['fs9p_json'].strategy)
        self.assertEqual(items['fs9p_json'].url, 'http://h/fs.json')
        self.assertTrue(items['fs9p_json'].as_text)

    def test_threshold_is_configurable(self):
        options = {'hda': {'url': 'http://h/hda.img', 'size': 2048}}
        items = SettingsAssembler(options, threshold=1024).plan(FakeFetcher())
        self.assertIsInstance(items[0].strategy, RangeFetchBuffer)


class TestSettingsBuilder(unittest.IsolatedAsyncioTestCase):

    async def test_defaults(self):
        settings = SettingsAssembler({}).assemble({})

        self.assertEqual(settings.memory_size, DEFAULT_MEMORY_SIZE)
        self.assertEqual(settings.vga_memory_size, DEFAULT_VGA_MEMORY_SIZE)
        self.assertEqual(settings.boot_order, DEFAULT_BOOT_ORDER)
        self.assertTrue(settings.load_devices)
        self.assertFalse(settings.enable_ne2k)
        self.assertEqual(settings.resources(), {})

    async def test_network_relay_enables_ne2k(self):
        settings = SettingsAssembler({'network_relay_url': 'ws://relay'}).assemble({})
        self.assertTrue(settings.enable_ne2k)
        self.assertEqual(settings.network_relay_url, 'ws://relay')

    async def test_eager_slots_hold_bytes(self):
        bios = InMemoryBuffer(b'bios-image')
        await bios.load()
        disk = InMemoryBuffer(b'disk')
        await disk.load()

        settings = SettingsBuilder().put('bios', bios).put('hda', disk).finalize()

        self.assertEqual(settings.bios, b'bios-image')
        self.assertIs(settings.hda, disk)

    async def test_non_resident_eager_rejected(self):
        fetcher = FakeFetcher({'http://h/bios.bin': b'x' * 100})
        lazy = RangeFetchBuffer(RemoteRef('http://h/bios.bin'), fetcher)
        await lazy.load()

        builder = SettingsBuilder().put('bios', lazy)
        with self.assertRaises(ConfigurationError):
            builder.finalize()

    def test_unknown_slot(self):
        with self.assertRaises(UnknownResourceError):
            SettingsBuilder().put('hdc', b'')

    def test_unknown_scalar(self):
        with self.assertRaises(TypeError):
            SettingsBuilder(turbo=True)

    def test_finalizes_once(self):
        builder = SettingsBuilder()
        settings = builder.finalize()

        self.assertIsInstance(settings, MachineSettings)
        with self.assertRaises(ConfigurationError):
            builder.finalize()
        with self.assertRaises(ConfigurationError):
            builder.put('bios', b'late')

    def test_settings_frozen(self):
        settings = SettingsBuilder().finalize()
        with self.assertRaises(dataclasses.FrozenInstanceError):
            settings.memory_size = 1

    async def test_manifest_text(self):
        settings = SettingsBuilder().put('fs9p_json', b'{"version": 1}').finalize()
        self.assertEqual(settings.fs9p_json, '{"version": 1}')

    async def test_assemble_from_loader(self):
        fetcher = FakeFetcher({
            'http://h/vga.bin': b'vga',
            'http://h/state.bin': b'state',
        })
        options = {
            'bios': {'buffer': b'bios'},
            'vga_bios': {'url': 'http://h/vga.bin'},
            'initial_state': {'url': 'http://h/state.bin'},
            'memory_size': 32 * MiB,
        }
        assembler = SettingsAssembler(options)
        results = await SequentialLoader(assembler.plan(fetcher), fetcher=fetcher).run()

        settings = assembler.assemble(results)

        self.assertEqual(settings.bios, b'bios')
        self.assertEqual(settings.vga_bios, b'vga')
        self.assertEqual(settings.initial_state, b'state')
        self.assertEqual(settings.memory_size, 32 * MiB)


if __name__ == '__main__':
    unittest.main()
