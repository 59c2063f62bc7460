#!/usr/bin/env python3
#
# msivm/common.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Application framework shared by msivm command-line tools.

An Application is built either directly (tests, other applications)
or from the command line through main_with_args(). Subclasses extend
main_add_parser_args() with their own options and implement
main_execute(), which ends by raising ApplicationExit.
'''
import getpass
import inspect
import logging
import os
import pprint
import sys
import threading
import traceback

import jinja2

import msivm
from msivm.azresourceid import RE_RESOURCE_GROUP_ABS
import msivm.base_defaults
from msivm.base_defaults import EXC_VALUE_DEFAULT
from msivm.btypes import LogTo
import msivm.clouds
from msivm.exceptions import ApplicationExit
import msivm.output
import msivm.util
from msivm.util import (ArgExplicit,
                        ArgumentParser,
                        expand_item_pformat,
                        getframename,
                       )

class Application():
    '''
    Base class for msivm applications. Owns logging, the username
    used for tagging, and jinja2 rendering of configurable names.
    '''
    def __init__(self,
                 args_explicit=None,
                 debug=0,
                 exc_value=EXC_VALUE_DEFAULT,
                 log_file=None,
                 log_level=None,
                 log_to=None,
                 logger=None,
                 username='',
                 **kwargs):
        '''
        args_explicit: names of command-line arguments the operator actually gave
        debug: extra verbosity beyond log_level; checked as "self.debug > N"
        exc_value: exception class raised for bad constructor values
        logger: use this logger instead of creating one; log_* are then ignored
        '''
        if kwargs:
            raise TypeError("%s: unexpected keyword arguments %s" % (type(self).__name__, ','.join(sorted(kwargs.keys()))))
        self._cls_init()
        self.args_explicit = set(args_explicit or ())
        self._args_saved = None # set by args_save()
        self.debug = debug
        self.exc_value = exc_value
        self._log_level, self._logger = self._logger_create(log_level, logger, log_to=log_to, log_file=log_file)
        self.username = username or username_default()

    LOGGER_NAME = 'msivm'

    LOG_FORMAT = "%(message)s"

    LOG_LEVEL_CHOICES = ('debug', 'info', 'warning', 'error', 'critical')
    LOG_LEVEL_DEFAULT = 'info'

    # tests/conftest.py sets this so that debug logging reaches the captured output
    LOG_LEVEL_PYTEST = ''

    LOG_TO_DEFAULT = LogTo.STDOUT.value

    # Azure SDK loggers are chatty at INFO; pin them down.
    NOISY_LOGGERS = (('azure.core.pipeline.policies.http_logging_policy', logging.WARNING),
                     ('azure.identity', logging.WARNING),
                     ('azure.identity._internal.decorators', logging.ERROR),
                     ('azure.mgmt', logging.WARNING),
                     ('msrest', logging.WARNING),
                     ('urllib3.connectionpool', logging.WARNING),
                    )

    @property
    def logger(self):
        '''
        Getter
        '''
        return self._logger

    @property
    def log_level(self):
        '''
        Getter
        '''
        return self._log_level

    @classmethod
    def _logger_create(cls, log_level, logger, log_to=None, log_file=None):
        '''
        Return (log_level, logger). A logger passed in is returned unchanged.
        log_file, when given, replaces the log_to stream.
        '''
        log_level = msivm.util.log_level_normalize(log_level if log_level is not None else cls.LOG_LEVEL_DEFAULT)
        if cls.LOG_LEVEL_PYTEST:
            log_level = min(log_level, msivm.util.log_level_normalize(cls.LOG_LEVEL_PYTEST))
        if logger is not None:
            return log_level, logger
        if log_file:
            dirname = os.path.dirname(os.path.abspath(log_file))
            if not os.path.isdir(dirname):
                raise ValueError("cannot log to %s: directory %s does not exist" % (log_file, dirname))
            logging.basicConfig(format=cls.LOG_FORMAT, filename=log_file)
        else:
            log_to = LogTo(log_to if log_to is not None else cls.LOG_TO_DEFAULT)
            logging.basicConfig(format=cls.LOG_FORMAT, stream=sys.stderr if log_to == LogTo.STDERR else sys.stdout)
        logger = logging.getLogger(name=cls.LOGGER_NAME)
        logger.setLevel(log_level)
        for name, level in cls.NOISY_LOGGERS:
            logging.getLogger(name=name).setLevel(level)
        return log_level, logger

    @classmethod
    def _cls_init(cls):
        '''
        Start-of-day setup. Safe to call more than once.
        '''
        msivm.output.capture()

    @classmethod
    def mth(cls):
        '''
        Return "Class.caller" for log messages
        '''
        return "%s.%s" % (cls.__name__, getframename(1))

    ######################################################################
    # command-line plumbing

    # Names of parsed arguments that are kept out of the constructor
    # kwargs and stored in self._args_saved instead. Merged along the MRO.
    ARGS_SAVE = ()

    _args_save_lock = threading.Lock()

    def args_save(self, args_saved):
        '''
        Store the arguments that args_process() held back
        '''
        assert isinstance(args_saved, dict)
        with self._args_save_lock:
            assert self._args_saved is None
            self._args_saved = args_saved

    @classmethod
    def args_process(cls, args_dict):
        '''
        Split parsed arguments into (constructor kwargs, saved args)
        according to ARGS_SAVE anywhere in the class hierarchy.
        '''
        names = set()
        for kls in inspect.getmro(cls):
            names.update(getattr(kls, 'ARGS_SAVE', ()))
        saved = {k : args_dict.pop(k) for k in names if k in args_dict}
        return args_dict, saved

    @classmethod
    def from_args_dict(cls, args_dict):
        '''
        Construct from the processed argument dict
        '''
        return cls(**args_dict)

    @classmethod
    def main_handle_parser_args(cls, ap_args):
        '''
        Post-process argparse.Namespace ap_args before it becomes kwargs.
        --config_path is consumed here.
        '''
        if not hasattr(ap_args, 'args_explicit'):
            ap_args.args_explicit = set()
        config_path = getattr(ap_args, 'config_path', None)
        if config_path:
            msivm.paths.config_filename_setdefault(config_path)
        if hasattr(ap_args, 'config_path'):
            delattr(ap_args, 'config_path')

    @classmethod
    def main_app_setup(cls, cmd_args):
        '''
        Parse cmd_args and construct the application.
        Returns (app, exit_verbose). Exceptions are left to the caller.
        '''
        doc = (inspect.getdoc(cls) or '').strip()
        ap_parser = ArgumentParser(allow_abbrev=False, description=doc.splitlines()[0] if doc else None)
        cls.main_add_parser_args(ap_parser)
        ap_args = ap_parser.parse_args(args=cmd_args)
        cls.main_handle_parser_args(ap_args)
        args_dict = vars(ap_args)
        exit_verbose = args_dict.pop('exit_verbose', False)
        args_dict, args_saved = cls.args_process(args_dict)
        args_dict['exc_value'] = ApplicationExit
        app = cls.from_args_dict(args_dict)
        app.args_save(args_saved)
        return app, exit_verbose

    @classmethod
    def main(cls, name):
        '''
        Run from the command line when name is __main__
        '''
        if name == '__main__':
            cls.main_with_args(sys.argv[1:])
            raise SystemExit(1)

    @classmethod
    def main_with_args(cls, cmd_args):
        '''
        Command-line entry point. Always raises SystemExit:
        ApplicationExit carries its code through (non-int codes are
        logged and become 1); any other exception is logged with
        its expansion and traceback and exits 1.
        '''
        cls._cls_init()
        exit_verbose = '--exit_verbose' in cmd_args
        app = None
        try:
            app, exit_verbose = cls.main_app_setup(cmd_args)
            app.main_execute()
            app.logger.error("%s.main_execute returned without exiting", type(app).__name__)
            raise ApplicationExit(1)
        except SystemExit as exc:
            # argparse (--help, usage errors)
            cls._exit_report(app, exc.code, exit_verbose)
            raise
        except ApplicationExit as exc:
            if not isinstance(exc.code, (bool, int, type(None))):
                cls._report(app, logging.ERROR, str(exc.code))
            cls._exit_report(app, exc.code, exit_verbose)
            raise SystemExit(int(bool(exc.code))) from exc
        except Exception as exc:
            expanded = expand_item_pformat(exc)
            if len(expanded.splitlines()) > 500:
                expanded = pprint.pformat(vars(exc))
            cls._report(app, logging.ERROR, "%r\n%s\n%s" % (exc, expanded, traceback.format_exc()))
            cls._exit_report(app, 1, exit_verbose)
            raise SystemExit(1) from exc

    @staticmethod
    def _report(app, level, txt):
        '''
        Log txt through app if it exists, else print it
        '''
        if app is not None:
            app.logger.log(level, "%s", txt)
        else:
            print(txt, flush=True)

    @classmethod
    def _exit_report(cls, app, code, exit_verbose):
        '''
        With --exit_verbose, report the exit code (and stack at debug > 0)
        '''
        if not exit_verbose:
            return
        if (app is not None) and (app.debug > 0):
            cls._report(app, logging.INFO, "exit stack:\n%s" % traceback.format_exc())
        cls._report(app, logging.INFO, "exit code %r" % code)

    @staticmethod
    def debug_default():
        '''
        Default --debug from MSIVM_DEBUG
        '''
        env = os.environ.get('MSIVM_DEBUG', '')
        if not env:
            return 0
        try:
            return int(env)
        except ValueError as exc:
            raise ApplicationExit("invalid MSIVM_DEBUG %r" % env) from exc

    @classmethod
    def main_add_parser_args(cls, ap_parser):
        '''
        Add command-line arguments. Subclasses call super() and then add their own.
        '''
        group = ap_parser.get_argument_group('common')
        group.add_argument('--config_path', type=str, default=None,
                           help='YAML config file (default $%s)' % msivm.base_defaults.CONFIG_PATH_ENV)
        group.add_argument('--debug', type=int, default=cls.debug_default(),
                           action=ArgExplicit,
                           help='debug level')
        group.add_argument('--exit_verbose', action='store_true',
                           help='report the exit status')
        group.add_argument('--log_level', type=str, default=cls.LOG_LEVEL_DEFAULT, choices=cls.LOG_LEVEL_CHOICES,
                           action=ArgExplicit,
                           help='log level (default %(default)s)')
        group.add_argument('--log_to', type=str, default=cls.LOG_TO_DEFAULT, choices=LogTo.values(),
                           action=ArgExplicit,
                           help='log stream (default %(default)s)')
        group.add_argument('--log_file', type=str, default=None,
                           action=ArgExplicit,
                           help='log to this file instead of --log_to')

    def main_execute(self):
        '''
        Do the work of the application and raise ApplicationExit.
        '''
        raise ApplicationExit(0)

    def manager_kwargs(self, **kwargs):
        '''
        Return kwargs for azure_tool.Manager() that share this application's
        logger and identity. kwargs are added last.
        '''
        ret = {'debug' : self.debug,
               'log_level' : self._log_level,
               'logger' : self._logger,
               'username' : self.username,
              }
        ret.update(kwargs)
        return ret

    @staticmethod
    def pubkey_filename_default():
        '''
        Default SSH public key for VM login
        '''
        return os.path.join(os.environ.get('HOME', '/'), '.ssh', 'id_rsa.pub')

    ######################################################################
    # jinja2

    def jinja_environment(self):
        '''
        Return the jinja2.Environment used to render configurable names
        '''
        # unknown template variables are errors
        return jinja2.Environment(undefined=jinja2.StrictUndefined)

    def jinja_substitutions(self, **kwargs):
        '''
        Variables visible to templates: application_class, scfg, username,
        location/resource_group/subscription_id where set, and kwargs.
        '''
        subs = {'application_class' : type(self).__name__,
                'scfg' : msivm.scfg,
                'username' : self.username,
               }
        for attr in ('location', 'resource_group', 'subscription_id'):
            value = getattr(self, attr, None)
            if value:
                subs[attr] = value
        subs.update(kwargs)
        return subs

    def jinja_effective(self, value, key='', **kwargs):
        '''
        Render value (str) as a jinja2 template. key names the value in log messages.
        Non-str values are returned unchanged.
        '''
        if not isinstance(value, str):
            return value
        try:
            return self.jinja_environment().from_string(value).render(**self.jinja_substitutions(**kwargs))
        except jinja2.exceptions.TemplateError as exc:
            self.logger.error("%s key=%r cannot render %r: %r", self.mth(), key, value, exc)
            raise

class ApplicationWithSubscription(Application):
    '''
    Application bound to one Azure subscription in one cloud
    '''
    def __init__(self, subscription_id='', tenant_id='', cloud='', **kwargs):
        super().__init__(**kwargs)
        subscription_id = subscription_id or os.environ.get('AZURE_SUBSCRIPTION_ID', '') or msivm.scfg.get('subscription_default', '')
        tenant_id = tenant_id or os.environ.get('AZURE_TENANT_ID', '') or msivm.scfg.get('tenant_id_default', '')
        self.subscription_id = msivm.util.uuid_normalize(subscription_id, key='subscription_id', exc_value=self.exc_value) if subscription_id else ''
        self.tenant_id = msivm.util.uuid_normalize(tenant_id, key='tenant_id', exc_value=self.exc_value) if tenant_id else ''
        if self.SUBSCRIPTION_ID_REQUIRED and (not self.subscription_id):
            raise self.exc_value("subscription_id not specified; use --subscription_id or set AZURE_SUBSCRIPTION_ID")
        self.cloud_name = cloud or msivm.base_defaults.CLOUD_DEFAULT
        self.cloud = msivm.clouds.cloud_get(self.cloud_name, exc_value=self.exc_value)

    SUBSCRIPTION_ID_REQUIRED = True

    @classmethod
    def main_add_parser_args(cls, ap_parser):
        '''
        See msivm.common.Application.main_add_parser_args()
        '''
        super().main_add_parser_args(ap_parser)
        group = ap_parser.get_argument_group('subscription')
        group.add_argument('--subscription_id', type=str, default='',
                           action=ArgExplicit,
                           help='subscription ID (default $AZURE_SUBSCRIPTION_ID, then config subscription_default)')
        group.add_argument('--tenant_id', type=str, default='',
                           action=ArgExplicit,
                           help='tenant ID (default $AZURE_TENANT_ID, then config tenant_id_default)')
        group.add_argument('--cloud', type=str, default=msivm.base_defaults.CLOUD_DEFAULT,
                           choices=msivm.clouds.cloud_names(),
                           action=ArgExplicit,
                           help='Azure cloud (default %(default)s)')

    def manager_kwargs(self, **kwargs):
        '''
        See msivm.common.Application.manager_kwargs()
        '''
        return super().manager_kwargs(subscription_id=self.subscription_id,
                                      tenant_id=self.tenant_id,
                                      cloud=self.cloud_name,
                                      **kwargs)

class ApplicationWithResourceGroup(ApplicationWithSubscription):
    '''
    Application with a default resource group
    '''
    def __init__(self, resource_group='', **kwargs):
        super().__init__(**kwargs)
        self.resource_group = resource_group or self.RESOURCE_GROUP_DEFAULT
        if self.resource_group:
            self.resource_group = self.resource_group_effective(self.resource_group, exc_value=self.exc_value)
        elif self.RESOURCE_GROUP_REQUIRED:
            raise self.exc_value("resource_group not specified")

    RESOURCE_GROUP_DEFAULT = ''
    RESOURCE_GROUP_HELP = 'resource group'
    RESOURCE_GROUP_REQUIRED = False

    @classmethod
    def main_add_parser_args(cls, ap_parser):
        '''
        See msivm.common.Application.main_add_parser_args()
        '''
        super().main_add_parser_args(ap_parser)
        group = ap_parser.get_argument_group('resource group')
        group.add_argument('--resource_group', type=str, default=os.environ.get('MSIVM_RESOURCE_GROUP', cls.RESOURCE_GROUP_DEFAULT),
                           action=ArgExplicit,
                           help=cls.RESOURCE_GROUP_HELP + ' (default %(default)r)')

    def manager_kwargs(self, **kwargs):
        '''
        See msivm.common.Application.manager_kwargs()
        '''
        kwargs.setdefault('resource_group', self.resource_group)
        return super().manager_kwargs(**kwargs)

    def resource_group_effective(self, resource_group, required=True, exc_value=ValueError):
        '''
        Return resource_group, defaulting to self.resource_group, after
        validating the name. Returns '' only when not required.
        '''
        resource_group = resource_group or getattr(self, 'resource_group', '')
        if not resource_group:
            if required:
                raise exc_value("resource_group not specified")
            return ''
        if not isinstance(resource_group, str):
            raise TypeError("invalid resource_group type %s" % type(resource_group))
        if not RE_RESOURCE_GROUP_ABS.search(resource_group):
            raise exc_value("invalid resource_group name %r" % resource_group)
        return resource_group

def username_default():
    '''
    Owner name used in resource tags: $MSIVM_USERNAME or the login name
    '''
    return os.environ.get('MSIVM_USERNAME', '') or getpass.getuser()
