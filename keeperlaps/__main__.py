# -*- coding: utf-8 -*-
#  _  __
# | |/ /___ ___ _ __  ___ _ _ ®
# | ' </ -_) -_) '_ \/ -_) '_|
# |_|\_\___\___| .__/\___|_|
#              |_|
#
# Keeper LAPS
# Copyright 2026 Keeper Security Inc.
# Contact: ops@keepersecurity.com
#


import argparse
import logging
import os
import sys
from typing import List, Optional

from . import __logging_format__, __version__
from . import clock
from .accounts import DsclAccountStore
from .backends import load_backend
from .config import METHOD_LOCAL, LapsConfig, load_config
from .engine import Outcome, OutcomeStatus, RotationEngine, RotationRequest
from .error import ConfigError, EngineError, ErrorKind
from .escrow import SecretEscrow
from .keychain import KeychainStore
from .retrieval import PasswordRetrieval

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONCURRENT_RUN = 75
EXIT_NOT_PRIVILEGED = 77

parser = argparse.ArgumentParser(prog='keeper-laps', allow_abbrev=False,
                                 description='Rotates the password of the local administrator account.')
parser.add_argument('--version', '-version', dest='version', action='store_true', help='Display version')
parser.add_argument('--getpassword', '-getpassword', dest='get_password', action='store_true',
                    help='Local method only: export the current password to a keychain item that is deleted '
                         'on the next run')
parser.add_argument('--print', dest='print_password', action='store_true',
                    help='With --getpassword, also print the password')
parser.add_argument('--resetpassword', '-resetpassword', dest='reset_password', action='store_true',
                    help='Force a password reset no matter the expiration date')
parser.add_argument('--firstpass', '-firstpass', dest='first_password', nargs='?', const='', default=None,
                    metavar='PASSWORD',
                    help='Reset the password proving the current one with the FirstPass setting or PASSWORD. '
                         'The current password of the admin MUST be this password or the change WILL FAIL.')
parser.add_argument('--config', dest='config', action='store', help='JSON config file to use')
parser.add_argument('--debug', dest='debug', action='store_true', help='Turn on debug mode')


def normalize_arguments(argv):    # type: (List[str]) -> List[str]
    """Flags are case insensitive: -getPassword and -getpassword are the same"""
    result = []
    for arg in argv:
        if arg.startswith('-') and '=' not in arg:
            result.append(arg.lower())
        else:
            result.append(arg)
    return result


def setup_logging(log_path, debug=False):    # type: (Optional[str], bool) -> None
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if debug or os.getenv('KEEPER_LAPS_DEBUG') else logging.INFO)
    if log_path:
        try:
            handler = logging.FileHandler(log_path)
        except OSError as e:
            logging.warning('Unable to open log file %s: %s', log_path, e)
            return
        handler.setFormatter(logging.Formatter(__logging_format__))
        logger.addHandler(handler)


def exit_code(outcome):    # type: (Outcome) -> int
    if outcome.ok:
        return EXIT_OK
    if outcome.error_kind == ErrorKind.NotPrivileged:
        return EXIT_NOT_PRIVILEGED
    if outcome.error_kind == ErrorKind.ConcurrentRunDetected:
        return EXIT_CONCURRENT_RUN
    return EXIT_FAILURE


def is_root():    # type: () -> bool
    return os.geteuid() == 0


def execute(config, opts):    # type: (LapsConfig, argparse.Namespace) -> int
    if not is_root():
        error = EngineError(ErrorKind.NotPrivileged,
                            f'keeper-laps needs to be run as root to change the password of {config.local_admin}.')
        logging.error('%s', error)
        return exit_code(Outcome.failed(error))

    accounts = DsclAccountStore()
    escrow = SecretEscrow(KeychainStore(config.keychain_path), config.marker_path)

    if opts.get_password:
        if config.method != METHOD_LOCAL:
            logging.warning('Password WILL NOT be exported as the current method is set to %s', config.method)
            return EXIT_OK
        outcome = PasswordRetrieval(config, accounts, escrow).run()
        if outcome.status == OutcomeStatus.Retrieved:
            print(f'Keychain item: {outcome.handle_id}')
            print(f'Expires: {clock.format_expiration(outcome.expires_at)}')
            if opts.print_password:
                print(f'Password: {outcome.plaintext}')
        return exit_code(outcome)

    first_password = None
    if opts.first_password is not None:
        first_password = opts.first_password or config.first_password
        logging.info('The --firstpass argument was invoked. Using the configured or supplied first password.')

    backend = load_backend(config, accounts, escrow)
    engine = RotationEngine(config, backend, accounts=accounts)
    outcome = engine.run(RotationRequest(force=opts.reset_password, first_password=first_password))
    return exit_code(outcome)


def main(argv=None):    # type: (Optional[List[str]]) -> None
    opts = parser.parse_args(normalize_arguments(sys.argv[1:] if argv is None else argv))

    if opts.version:
        print(f'Keeper LAPS, version {__version__}')
        sys.exit(EXIT_OK)

    logging.basicConfig(format='%(message)s')
    try:
        config = load_config(opts.config)
    except ConfigError as e:
        logging.error('Unable to load configuration. %s', e)
        sys.exit(EXIT_FAILURE)
    except OSError as e:
        logging.error('Unable to read configuration: %s', e)
        sys.exit(EXIT_FAILURE)

    setup_logging(config.log_path, opts.debug)
    try:
        errno = execute(config, opts)
    except ConfigError as e:
        logging.error('%s', e)
        errno = EXIT_FAILURE
    sys.exit(errno)


if __name__ == '__main__':
    main()
