# pylint: disable=invalid-name

import logging

import zfsprov.log
import zfsprov.tests


class TC_00_Formatter(zfsprov.tests.ProvisionerTestCase):
    def record(self, name, msg='Created volume'):
        return logging.LogRecord(name, logging.INFO, __file__, 1, msg,
            None, None, func='provision')

    def test_000_volume_prefix(self):
        formatter = zfsprov.log.Formatter()
        self.assertEqual(formatter.format(self.record('volume.pvc-1')),
            'volume.pvc-1: INFO: Created volume')
        self.assertEqual(formatter.format(self.record('zfsprov.metrics')),
            'INFO: Created volume')

    def test_001_debug(self):
        formatter = zfsprov.log.Formatter(debug=True)
        self.assertRegex(formatter.format(self.record('zfsprov.metrics')),
            r'^\[\S+ \S+\.provision:1\] zfsprov\.metrics: INFO: ')

    def test_010_volume_logger(self):
        self.assertEqual(zfsprov.log.get_volume_logger('pvc-1').name,
            'volume.pvc-1')
