# pylint: disable=invalid-name

import os

import lxml.etree

import zfsprov.config
import zfsprov.exc
import zfsprov.tests

FULL = '''<?xml version="1.0" encoding="utf-8"?>
<provisioner parent="tank/kubernetes"
             target-config-dir="/srv/tgt"
             share-options="rw=@192.168.0.0/16"
             server-address="nas.example.com">
    <metrics address="127.0.0.1" port="9100"/>
</provisioner>
'''


class TC_00_Config(zfsprov.tests.ProvisionerTestCase):
    def write(self, content):
        path = os.path.join(self.make_tmpdir(), 'provisioner.xml')
        with open(path, 'w') as fh:
            fh.write(content)
        return path

    def test_000_defaults(self):
        config = zfsprov.config.ProvisionerConfig(parent='tank/k8s')
        self.assertEqual(config.target_config_dir, '/etc/tgt/conf.d')
        self.assertEqual(config.share_options, 'rw=@10.0.0.0/8')
        self.assertIsNone(config.server_address)
        self.assertEqual(config.metrics_address, '')
        self.assertEqual(config.metrics_port, 8080)

    def test_001_invalid(self):
        for kwargs in ({'parent': ''}, {'parent': 'tank/k8s@snap'},
                {'parent': '/tank'}, {'parent': 'tank/'},
                {'parent': 'tank', 'metrics_port': 0},
                {'parent': 'tank', 'metrics_port': 65536}):
            with self.subTest(**kwargs):
                with self.assertRaises(zfsprov.exc.ConfigurationError):
                    zfsprov.config.ProvisionerConfig(**kwargs)

    def test_010_load(self):
        config = zfsprov.config.ProvisionerConfig.load(self.write(FULL))
        self.assertEqual(config, zfsprov.config.ProvisionerConfig(
            parent='tank/kubernetes',
            target_config_dir='/srv/tgt',
            share_options='rw=@192.168.0.0/16',
            server_address='nas.example.com',
            metrics_address='127.0.0.1',
            metrics_port=9100))

    def test_011_load_minimal(self):
        config = zfsprov.config.ProvisionerConfig.load(
            self.write('<provisioner parent="tank"/>'))
        self.assertEqual(config, zfsprov.config.ProvisionerConfig('tank'))

    def test_012_load_errors(self):
        for content in ('<provisioner/>', '<volumes parent="tank"/>',
                '<provisioner parent="tank"><metrics port="x"/></provisioner>',
                '<provisioner parent="tank">'):
            with self.subTest(content=content):
                path = self.write(content)
                with self.assertRaises(zfsprov.exc.ConfigurationError) as e:
                    zfsprov.config.ProvisionerConfig.load(path)
                self.assertEqual(e.exception.path, path)

    def test_013_load_missing(self):
        with self.assertRaises(zfsprov.exc.ConfigurationError):
            zfsprov.config.ProvisionerConfig.load(
                os.path.join(self.make_tmpdir(), 'missing.xml'))

    def test_020_save(self):
        config = zfsprov.config.ProvisionerConfig.load(self.write(FULL))
        path = os.path.join(self.make_tmpdir(), 'saved.xml')
        config.save(path)
        self.assertEqual(zfsprov.config.ProvisionerConfig.load(path), config)
        self.assertEqual(lxml.etree.parse(path).getroot().get('parent'),
            'tank/kubernetes')
