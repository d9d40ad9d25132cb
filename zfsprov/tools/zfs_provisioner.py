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

'''zfs-provisioner - provision, delete and measure ZFS backed volumes'''

import argparse
import asyncio
import json
import sys
import threading

import prometheus_client

import zfsprov.exc
import zfsprov.metrics
import zfsprov.provisioner
import zfsprov.tools
import zfsprov.utils
import zfsprov.volume


class ManifestAction(zfsprov.tools.ProvisionerAction):
    ''' Action for argument parser that reads a PersistentVolume manifest
        from a file (``-`` for standard input).
    '''
    # pylint: disable=too-few-public-methods,redefined-builtin
    def __init__(self, option_strings, dest, nargs='?', default='-',
                 help='PersistentVolume manifest (JSON), "-" for stdin',
                 **kwargs):
        super(ManifestAction, self).__init__(option_strings, dest,
            nargs=nargs, default=default, help=help, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        setattr(namespace, self.dest, values)

    def parse_config(self, parser, namespace):
        path = getattr(namespace, self.dest)
        try:
            if path == '-':
                manifest = json.load(sys.stdin)
            else:
                with open(path) as fh:
                    manifest = json.load(fh)
            record = zfsprov.volume.VolumeRecord.from_manifest(manifest)
        except (OSError, ValueError) as e:
            parser.error_runtime('cannot read manifest {}: {}'.format(
                path, e))
        setattr(namespace, self.dest, record)


def size_type(value):
    try:
        return zfsprov.utils.parse_size(value)
    except zfsprov.exc.InvalidArgumentError as e:
        raise argparse.ArgumentTypeError(str(e))


def do_provision(args):
    ''' Provision one volume and print its manifest '''
    request = zfsprov.volume.VolumeRequest(
        name=args.name,
        capacity=args.size,
        access_modes=tuple(args.access_modes or ('ReadWriteOnce',)),
        reclaim_policy=args.reclaim_policy,
        parameters=args.parameters,
    )
    provisioner = zfsprov.provisioner.Provisioner(args.config)
    record = asyncio.run(provisioner.provision(request))
    json.dump(record.to_manifest(), sys.stdout, indent=2, sort_keys=True)
    print()
    return 0


def do_delete(args):
    ''' Delete the volume described by a manifest '''
    provisioner = zfsprov.provisioner.Provisioner(args.config)
    asyncio.run(provisioner.delete(args.manifest))
    return 0


def make_registry(config):
    registry = prometheus_client.CollectorRegistry()
    registry.register(zfsprov.metrics.VolumeMetricsCollector(config))
    return registry


def do_metrics(args):
    ''' Print one collection pass in Prometheus text format '''
    registry = make_registry(args.config)
    sys.stdout.write(prometheus_client.generate_latest(registry).decode())
    return 0


def do_serve_metrics(args):
    ''' Serve metrics over HTTP until killed '''
    registry = make_registry(args.config)
    address = args.address if args.address is not None \
        else args.config.metrics_address
    port = args.port if args.port is not None else args.config.metrics_port
    prometheus_client.start_http_server(port, addr=address,
        registry=registry)
    parser.print_error('Serving metrics on {}:{}'.format(
        address or '*', port))
    threading.Event().wait()
    return 0


parser = zfsprov.tools.ProvisionerArgumentParser(
    description='Provision and delete ZFS backed persistent volumes.')

sub_parsers = parser.add_subparsers(
    title='commands', dest='command', metavar='COMMAND',
    parser_class=argparse.ArgumentParser)
sub_parsers.required = True

provision_parser = sub_parsers.add_parser('provision',
    help='create a volume and print its PersistentVolume manifest')
provision_parser.add_argument('name', metavar='NAME',
    help='volume name, like pvc-<claim uid>')
provision_parser.add_argument('size', metavar='SIZE', type=size_type,
    help='capacity in bytes; K, M, G, T, Ki, Mi, Gi, Ti suffixes allowed')
provision_parser.add_argument('--param', '-o', dest='parameters',
    action=zfsprov.tools.ParameterAction,
    help='request parameter, e.g. kind=iscsi, IQN=..., shareOptions=...')
provision_parser.add_argument('--access-mode', dest='access_modes',
    action='append', choices=zfsprov.volume.ACCESS_MODES,
    help='access mode (may be repeated; default: ReadWriteOnce)')
provision_parser.add_argument('--reclaim-policy',
    choices=zfsprov.volume.RECLAIM_POLICIES, default='Delete',
    help='reclaim policy (default: %(default)s)')
provision_parser.set_defaults(func=do_provision)

delete_parser = sub_parsers.add_parser('delete',
    help='delete the volume described by a PersistentVolume manifest')
delete_parser.add_argument('manifest', metavar='FILE', nargs='?',
    action=ManifestAction)
delete_parser.set_defaults(func=do_delete)

metrics_parser = sub_parsers.add_parser('metrics',
    help='print volume metrics once')
metrics_parser.set_defaults(func=do_metrics)

serve_parser = sub_parsers.add_parser('serve-metrics',
    help='serve volume metrics over HTTP')
serve_parser.add_argument('--address', metavar='ADDRESS',
    help='address to listen on (default: from configuration)')
serve_parser.add_argument('--port', metavar='PORT', type=int,
    help='port to listen on (default: from configuration)')
serve_parser.set_defaults(func=do_serve_metrics)


def main(args=None):
    '''Main routine of :program:`zfs-provisioner`.

    :param list args: Optional arguments to override those delivered from \
        command line.
    '''

    args = parser.parse_args(args)
    try:
        return args.func(args)
    except zfsprov.exc.ProvisionerException as e:
        parser.print_error('{}: error: {}'.format(parser.prog, e))
        return 1


if __name__ == '__main__':
    sys.exit(main())
