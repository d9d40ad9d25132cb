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

'''zfs-provisioner command line tools
'''

import argparse
import logging
import sys

import zfsprov.config
import zfsprov.exc
import zfsprov.log


class ProvisionerAction(argparse.Action):
    ''' Interface providing a convinience method to be called, after
        `namespace.config` is instantiated.
    '''
    # pylint: disable=too-few-public-methods
    def parse_config(self, parser, namespace):
        ''' This method is called by
            :py:class:`zfsprov.tools.ProvisionerArgumentParser` after the
            `namespace.config` is instantiated. Overwrite this method when
            extending :py:class:`zfsprov.tools.ProvisionerAction` to
            initialize values based on the `namespace.config`
        '''
        raise NotImplementedError


class ParameterAction(argparse.Action):
    '''Action for argument parser that stores a request parameter.'''
    # pylint: disable=redefined-builtin,too-few-public-methods
    def __init__(self,
            option_strings,
            dest,
            metavar='KEY=VALUE',
            required=False,
            help='set request parameter to a value'):
        super(ParameterAction, self).__init__(option_strings, dest,
            metavar=metavar, default={}, help=help)

    def __call__(self, parser, namespace, values, option_string=None):
        try:
            key, value = values.split('=', 1)
        except ValueError:
            parser.error('invalid parameter token: {!r}'.format(values))

        # argparse shares the default dict between invocations
        parameters = dict(getattr(namespace, self.dest) or {})
        parameters[key] = value
        setattr(namespace, self.dest, parameters)


class ProvisionerArgumentParser(argparse.ArgumentParser):
    '''Parser preconfigured for use in zfs-provisioner command-line tools.

    :param bool want_config: load :py:class:`zfsprov.config.ProvisionerConfig`
        into ``namespace.config``

    *kwargs* are passed to :py:class:`argparser.ArgumentParser`.

    Currenty supported options:
        ``--config`` location of the configuration file
        ``--parent`` use another parent dataset than the configured one
        ``--verbose`` and ``--quiet``
    '''

    def __init__(self, want_config=True, **kwargs):

        super(ProvisionerArgumentParser, self).__init__(**kwargs)

        self._want_config = want_config
        if self._want_config:
            self.add_argument('--config', '-c', metavar='FILE',
                action='store', default=zfsprov.config.config_path,
                help='configuration file (default: %(default)s)')
            self.add_argument('--parent', metavar='DATASET', action='store',
                help='parent dataset, overriding the configuration file')

        self.add_argument('--verbose', '-v', action='count',
                          help='increase verbosity')

        self.add_argument('--quiet', '-q', action='count',
                          help='decrease verbosity')

        self.set_defaults(verbose=1, quiet=0)

    def parse_args(self, *args, **kwargs):
        namespace = super(ProvisionerArgumentParser, self).parse_args(
            *args, **kwargs)

        self.set_verbosity(namespace)

        if self._want_config:
            namespace.config = self.load_config(namespace)

        for action in self._actions:
            # pylint: disable=protected-access
            if issubclass(action.__class__, ProvisionerAction):
                action.parse_config(self, namespace)
            elif issubclass(action.__class__,
                    argparse._SubParsersAction):  # pylint: disable=no-member
                command = getattr(namespace, 'command', None)
                if command is None:
                    continue
                subparser = action._name_parser_map[command]
                for subaction in subparser._actions:
                    if issubclass(subaction.__class__, ProvisionerAction):
                        subaction.parse_config(self, namespace)

        return namespace

    def load_config(self, namespace):
        '''Configuration from ``--config``, with ``--parent`` applied.

        A missing configuration file is fine when ``--parent`` is given.
        '''
        try:
            config = zfsprov.config.ProvisionerConfig.load(namespace.config)
        except zfsprov.exc.ConfigurationError as e:
            if namespace.parent is None:
                self.error_runtime(str(e))
            try:
                return zfsprov.config.ProvisionerConfig(
                    parent=namespace.parent)
            except zfsprov.exc.ConfigurationError as e2:
                self.error_runtime(str(e2))
        if namespace.parent is not None:
            try:
                config = zfsprov.config.ProvisionerConfig(
                    parent=namespace.parent,
                    target_config_dir=config.target_config_dir,
                    share_options=config.share_options,
                    server_address=config.server_address,
                    metrics_address=config.metrics_address,
                    metrics_port=config.metrics_port)
            except zfsprov.exc.ConfigurationError as e:
                self.error_runtime(str(e))
        return config

    def error_runtime(self, message):
        '''Runtime error, without showing usage.

        :param str message: message to show
        '''
        self.exit(1, '{}: error: {}\n'.format(self.prog, message))

    @staticmethod
    def get_loglevel_from_verbosity(namespace):
        ''' Return loglevel calculated from quiet and verbose arguments '''
        return (namespace.quiet - namespace.verbose) * 10 + logging.WARNING

    @staticmethod
    def set_verbosity(namespace):
        '''Apply a verbosity setting.

        This is done by configuring global logging.
        :param argparse.Namespace args: args as parsed by parser
        '''

        verbose = namespace.verbose - namespace.quiet

        if verbose >= 2:
            zfsprov.log.enable_debug()
        elif verbose >= 1:
            zfsprov.log.enable()

    # pylint: disable=no-self-use
    def print_error(self, *args, **kwargs):
        ''' Print to ``sys.stderr``'''
        print(*args, file=sys.stderr, **kwargs)

