#
# zfs-provisioner - ZFS backed persistent volumes for Kubernetes
#
# Copyright (C) 2026  The zfs-provisioner developers
#
# This library is free software; you can redistribute it and/or
# modify it under the terms of the GNU Lesser General Public
# License as published by the Free Software Foundation; either
# version 2.1 of the License, or (at your option) any later version.
#
# This library is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
# Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public
# License along with this library; if not, see <https://www.gnu.org/licenses/>.
#

'''
.. warning::
    The test suite never touches a real pool: :py:class:`FakeZFS` stands
    in for the :program:`zfs` binary.

Use :py:class:`ProvisionerTestCase` as base class for tests that need an
event loop, and :py:meth:`FakeZFS.patch` to run them against an
in-memory dataset tree.
'''

import asyncio
import contextlib
import logging
import shutil
import tempfile
import unittest
import unittest.mock

import zfsprov.config
import zfsprov.storage.zfs

PARENT = 'tank/k8s'


class ProvisionerTestCase(unittest.TestCase):
    '''Base class for zfs-provisioner unit tests.
    '''

    def __init__(self, *args, **kwargs):
        super(ProvisionerTestCase, self).__init__(*args, **kwargs)
        self.longMessage = True
        self.log = logging.getLogger('{}.{}.{}'.format(
            self.__class__.__module__,
            self.__class__.__name__,
            self._testMethodName))
        self.loop = None

    def __str__(self):
        return '{}/{}/{}'.format(
            self.__class__.__module__,
            self.__class__.__name__,
            self._testMethodName)

    def setUp(self):
        super().setUp()
        self.loop = asyncio.new_event_loop()
        self.addCleanup(self.cleanup_loop)

    def cleanup_loop(self):
        self.loop.run_until_complete(self.loop.shutdown_asyncgens())
        self.loop.close()
        self.loop = None

    def rc(self, future):
        return self.loop.run_until_complete(future)

    def make_tmpdir(self):
        tmpdir = tempfile.mkdtemp(prefix='zfsprov-test-')
        self.addCleanup(shutil.rmtree, tmpdir, ignore_errors=True)
        return tmpdir

    def make_config(self, **kwargs):
        '''Configuration rooted at :py:data:`PARENT` with target
        descriptors going into a temporary directory'''
        kwargs.setdefault('parent', PARENT)
        if 'target_config_dir' not in kwargs:
            kwargs['target_config_dir'] = self.make_tmpdir()
        kwargs.setdefault('server_address', 'nas.example.com')
        return zfsprov.config.ProvisionerConfig(**kwargs)

    def assertFileContent(self, path, content):
        with open(path) as fh:
            self.assertEqual(fh.read(), content)


class FakeZFS:
    '''In-memory dataset tree answering :program:`zfs` command lines.

    Answers go through the same output processing as real invocations, so
    errors surface as the exceptions of :py:mod:`zfsprov.storage.zfs`.

    :ivar calls: every command line received, as tuples
    :ivar failures: subcommand -> stderr; the next call of that
        subcommand fails with it
    '''

    def __init__(self, *roots):
        self.datasets = {}
        self.calls = []
        self.failures = {}
        for root in roots or (PARENT.split('/')[0], PARENT):
            self.add_filesystem(root)

    def add_filesystem(self, name, **properties):
        props = {
            'type': 'filesystem',
            'mountpoint': '/' + name,
            'refquota': '0',
            'refreservation': 'none',
            'usedbydataset': '24576',
            'sharenfs': 'off',
        }
        props.update(properties)
        self.datasets[name] = props

    def add_volume(self, name, size, **properties):
        props = {
            'type': 'volume',
            'mountpoint': '-',
            'volsize': str(size),
            'refquota': '0',
            'usedbydataset': '8192',
        }
        props.update(properties)
        self.datasets[name] = props

    def add_snapshot(self, name, **properties):
        props = {
            'type': 'snapshot',
            'mountpoint': '-',
            'usedbydataset': '-',
        }
        props.update(properties)
        self.datasets[name] = props

    def __contains__(self, name):
        return name in self.datasets

    def subcommands(self):
        return [cmd[0] for cmd in self.calls]

    @staticmethod
    def _depth(name, root):
        rel = name[len(root):]
        return rel.count('/') + rel.count('@')

    def _descendants(self, root, depth=None):
        for name in sorted(self.datasets):
            if name != root and not name.startswith(root + '/') \
                    and not name.startswith(root + '@'):
                continue
            if depth is not None and self._depth(name, root) > depth:
                continue
            yield name

    def _value(self, name, column):
        if column == 'name':
            return name
        return self.datasets[name].get(column, '-')

    def _missing(self, verb, name):
        return 1, '', "cannot {} '{}': dataset does not exist\n".format(
            verb, name)

    def _do_list(self, args):
        depth = None
        recursive = False
        columns = ['name']
        while len(args) > 1:
            opt = args.pop(0)
            if opt == '-Hp':
                continue
            if opt == '-t':
                args.pop(0)
            elif opt == '-r':
                recursive = True
            elif opt == '-d':
                depth = int(args.pop(0))
            elif opt == '-o':
                columns = args.pop(0).split(',')
            else:
                raise AssertionError('unexpected zfs list option ' + opt)
        name = args[0]
        if name not in self.datasets:
            return self._missing('open', name)
        if recursive or depth is not None:
            names = self._descendants(name, depth)
        else:
            names = [name]
        lines = ['\t'.join(self._value(n, col) for col in columns)
            for n in names]
        return 0, ''.join(line + '\n' for line in lines), ''

    def _do_create(self, args):
        size = None
        properties = {}
        while len(args) > 1:
            opt = args.pop(0)
            if opt == '-V':
                size = int(args.pop(0))
            elif opt == '-o':
                key, value = args.pop(0).split('=', 1)
                properties[key] = value
            else:
                raise AssertionError('unexpected zfs create option ' + opt)
        name = args[0]
        if name in self.datasets:
            return 1, '', "cannot create '{}': dataset already exists\n".format(
                name)
        if name.rsplit('/', 1)[0] not in self.datasets:
            return 1, '', "cannot create '{}': parent does not exist\n".format(
                name)
        if size is None:
            self.add_filesystem(name, **properties)
        else:
            self.add_volume(name, size, **properties)
        return 0, '', ''

    def _do_destroy(self, args):
        recursive = args[0] == '-r'
        name = args[-1]
        if name not in self.datasets:
            return self._missing('open', name)
        children = [n for n in self._descendants(name) if n != name]
        if children and not recursive:
            return 1, '', "cannot destroy '{}': filesystem has children\n" \
                "use '-r' to destroy the following datasets:\n{}\n".format(
                    name, '\n'.join(children))
        for child in children + [name]:
            del self.datasets[child]
        return 0, '', ''

    def run(self, *cmd, log):
        self.calls.append(cmd)
        subcommand = cmd[0]
        if subcommand in self.failures:
            returncode, stdout, stderr = \
                1, '', self.failures.pop(subcommand)
        else:
            handler = getattr(self, '_do_' + subcommand)
            returncode, stdout, stderr = handler(list(cmd[1:]))
        # pylint: disable=protected-access
        return zfsprov.storage.zfs._process_zfs_output(
            ['zfs'] + list(cmd), returncode,
            stdout.encode(), stderr.encode(), log=log)

    async def run_async(self, *cmd, log):
        return self.run(*cmd, log=log)

    @contextlib.contextmanager
    def patch(self):
        '''Route :py:func:`zfsprov.storage.zfs.zfs` and its asynchronous
        version to this fake'''
        with unittest.mock.patch('zfsprov.storage.zfs.zfs', self.run), \
                unittest.mock.patch('zfsprov.storage.zfs.zfs_async',
                    self.run_async):
            yield self


def patch_tgt_admin(**kwargs):
    '''Replace :program:`tgt-admin` invocations with a mock'''
    return unittest.mock.patch('zfsprov.storage.iscsi.tgt_admin',
        new_callable=unittest.mock.AsyncMock, **kwargs)


def run_as_root():
    return unittest.mock.patch('os.getuid', return_value=0)


def which_or_skip(program):
    path = shutil.which(program)
    if path is None:
        raise unittest.SkipTest('{} is not available'.format(program))
    return path

