""" Tests for the iSCSI export kind """

# pylint: disable=invalid-name

import os
import stat
import unittest.mock

import zfsprov.config
import zfsprov.exc
import zfsprov.storage.iscsi as iscsi
import zfsprov.storage.zfs
import zfsprov.tests
import zfsprov.volume

from zfsprov.tests import FakeZFS, PARENT

IQN = "iqn.2026-01.com.example"

TARGET = """\
# Managed by zfs-provisioner; removed when the volume is deleted.
<target iqn.2026-01.com.example:pvc-2>
     # Provided device as an iSCSI target
     backing-store /dev/zvol/tank/k8s/pvc-2
</target>
"""


class TC_00_TargetConfig(zfsprov.tests.ProvisionerTestCase):
    def setUp(self):
        super().setUp()
        self.tmpdir = self.make_tmpdir()
        self.target = iscsi.TargetConfig(
            config_dir=self.tmpdir,
            identity="pvc-2",
            target_name=IQN + ":pvc-2",
            backing_store="/dev/zvol/tank/k8s/pvc-2",
        )

    def test_000_render(self):
        self.assertEqual(self.target.render(), TARGET)

    def test_001_path(self):
        self.assertEqual(
            self.target.path, os.path.join(self.tmpdir, "pvc-2.conf")
        )

    def test_010_write(self):
        self.assertEqual(self.target.write(self.log), self.target.path)
        self.assertFileContent(self.target.path, TARGET)
        mode = stat.S_IMODE(os.stat(self.target.path).st_mode)
        self.assertEqual(mode, 0o644)
        self.assertEqual(os.listdir(self.tmpdir), ["pvc-2.conf"])

    def test_011_write_fails(self):
        target = iscsi.TargetConfig(
            config_dir=os.path.join(self.tmpdir, "missing"),
            identity="pvc-2",
            target_name=IQN + ":pvc-2",
            backing_store="/dev/zvol/tank/k8s/pvc-2",
        )
        with self.assertRaises(zfsprov.exc.TargetConfigError) as e:
            target.write(self.log)
        self.assertEqual(e.exception.path, target.path)

    def test_020_remove(self):
        self.target.write(self.log)
        self.assertTrue(iscsi.remove_config(self.tmpdir, "pvc-2", self.log))
        self.assertFalse(os.path.exists(self.target.path))
        self.assertFalse(iscsi.remove_config(self.tmpdir, "pvc-2", self.log))


class TC_01_TgtAdmin(zfsprov.tests.ProvisionerTestCase):
    def tgt_admin(self, program, *args):
        with unittest.mock.patch.dict(
            zfsprov.config.system_path, {"tgt_admin": program}
        ), zfsprov.tests.run_as_root():
            return self.rc(iscsi.tgt_admin(*args, log=self.log))

    def test_000_success(self):
        echo = zfsprov.tests.which_or_skip("echo")
        self.assertEqual(
            self.tgt_admin(echo, "--delete", "x"),
            "--delete x\n",
        )

    def test_001_failure(self):
        with self.assertRaises(zfsprov.exc.ExportDaemonError) as e:
            self.tgt_admin(zfsprov.tests.which_or_skip("false"), "-e")
        self.assertEqual(e.exception.returncode, 1)
        self.assertEqual(e.exception.action, "-e")

    def test_002_not_installed(self):
        with self.assertRaises(zfsprov.exc.ExportDaemonError) as e:
            self.tgt_admin("/nonexistent/tgt-admin", "--delete", IQN + ":x")
        self.assertEqual(e.exception.returncode, 127)
        self.assertEqual(e.exception.action, "--delete " + IQN + ":x")


class TC_10_ISCSIExport(zfsprov.tests.ProvisionerTestCase):
    def setUp(self):
        super().setUp()
        self.fake = FakeZFS()
        patcher = self.fake.patch()
        patcher.__enter__()
        self.addCleanup(patcher.__exit__, None, None, None)
        self.config = self.make_config()
        self.kind = iscsi.ISCSIExport(
            self.config, zfsprov.storage.zfs.ZFSAccessor(PARENT)
        )
        self.conf = os.path.join(self.config.target_config_dir, "pvc-2.conf")

    def request(self, **parameters):
        parameters.setdefault("IQN", IQN)
        return zfsprov.volume.VolumeRequest(
            name="pvc-2", capacity=4096, parameters=parameters
        )

    def record(self):
        return zfsprov.volume.VolumeRecord(
            name="pvc-2",
            capacity=4096,
            source=zfsprov.volume.ISCSIVolumeSource(
                "nas", IQN + ":pvc-2", 1
            ),
        )

    def test_000_validate(self):
        self.kind.validate(self.request())
        for iqn in (
            "",
            "iqn with space",
            "iqn.2026-01.com.example>\n<target x",
            "iqn.2026-01.com.example<",
            "target.2026-01.com.example",
        ):
            with self.subTest(iqn=iqn):
                with self.assertRaises(zfsprov.exc.InvalidArgumentError):
                    self.kind.validate(self.request(IQN=iqn))
        with self.assertRaises(zfsprov.exc.InvalidArgumentError):
            self.kind.validate(
                zfsprov.volume.VolumeRequest(name="pvc-2", capacity=1)
            )

    def test_010_provision(self):
        with zfsprov.tests.patch_tgt_admin() as tgt_admin:
            source = self.rc(
                self.kind.provision_dataset(
                    self.request(), "pvc-2", "nas", self.log
                )
            )
        self.assertEqual(
            source,
            zfsprov.volume.ISCSIVolumeSource(
                target_portal="nas", iqn=IQN + ":pvc-2", lun=1
            ),
        )
        self.assertEqual(
            self.fake.datasets[PARENT + "/pvc-2"]["volsize"], "4096"
        )
        self.assertFileContent(self.conf, TARGET)
        tgt_admin.assert_awaited_once_with("-e", log=self.log)

    def test_011_reload_fails(self):
        with zfsprov.tests.patch_tgt_admin(
            side_effect=zfsprov.exc.ExportDaemonError("-e", 22)
        ):
            with self.assertLogs(self.log, "WARNING"):
                source = self.rc(
                    self.kind.provision_dataset(
                        self.request(), "pvc-2", "nas", self.log
                    )
                )
        self.assertEqual(source.iqn, IQN + ":pvc-2")
        self.assertIn(PARENT + "/pvc-2", self.fake)
        self.assertTrue(os.path.exists(self.conf))

    def test_012_volume_exists_without_descriptor(self):
        self.fake.add_volume(PARENT + "/pvc-2", 8192)
        with zfsprov.tests.patch_tgt_admin() as tgt_admin:
            with self.assertRaises(zfsprov.exc.AlreadyExistsError):
                self.rc(
                    self.kind.provision_dataset(
                        self.request(), "pvc-2", "nas", self.log
                    )
                )
        self.assertFalse(os.path.exists(self.conf))
        tgt_admin.assert_not_awaited()
        self.assertEqual(
            self.fake.datasets[PARENT + "/pvc-2"]["volsize"], "8192"
        )

    def test_013_descriptor_exists(self):
        with open(self.conf, "w") as f:
            f.write(TARGET)
        with zfsprov.tests.patch_tgt_admin() as tgt_admin:
            with self.assertRaises(zfsprov.exc.AlreadyExistsError):
                self.rc(
                    self.kind.provision_dataset(
                        self.request(IQN="iqn.2026-02.org.other"),
                        "pvc-2",
                        "nas",
                        self.log,
                    )
                )
        self.assertFileContent(self.conf, TARGET)
        self.assertEqual(self.fake.calls, [])
        tgt_admin.assert_not_awaited()

    def test_014_config_dir_missing(self):
        self.kind = iscsi.ISCSIExport(
            self.make_config(target_config_dir="/nonexistent/conf.d"),
            zfsprov.storage.zfs.ZFSAccessor(PARENT),
        )
        with zfsprov.tests.patch_tgt_admin():
            with self.assertRaises(zfsprov.exc.TargetConfigError):
                self.rc(
                    self.kind.provision_dataset(
                        self.request(), "pvc-2", "nas", self.log
                    )
                )
        self.assertEqual(self.fake.calls, [])

    def test_020_deprovision(self):
        with open(self.conf, "w") as f:
            f.write(TARGET)
        with zfsprov.tests.patch_tgt_admin() as tgt_admin:
            self.rc(self.kind.deprovision_export(self.record(), self.log))
        tgt_admin.assert_awaited_once_with(
            "--delete", IQN + ":pvc-2", log=self.log
        )
        self.assertFalse(os.path.exists(self.conf))
        self.assertEqual(self.fake.calls, [])

    def test_021_deprovision_daemon_fails(self):
        with open(self.conf, "w") as f:
            f.write(TARGET)
        with zfsprov.tests.patch_tgt_admin(
            side_effect=zfsprov.exc.ExportDaemonError("--delete", 1)
        ):
            with self.assertLogs(self.log, "WARNING"):
                self.rc(self.kind.deprovision_export(self.record(), self.log))
        self.assertFalse(os.path.exists(self.conf))
