#
# msivm/_scfg.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
scfg: validated settings from the defaults section of the config file.
Loaded on first use. Values are read-only; dicts become ReadOnlyDict
and lists become tuples.
'''
import threading

import msivm._paths
import msivm.base_defaults
from msivm.btypes import ReadOnlyDict
from msivm.exceptions import ConfigError
from msivm.util import (RE_UUID_ABS,
                        uuid_normalize,
                       )

_MISSING = object()

class _Scfg():
    '''
    Lazily-loaded config defaults. Keys set in test_values
    shadow the file; only unit tests set them.
    '''
    def __init__(self):
        self._vlock = threading.RLock()
        self._vfilename = None
        self._vdata = None
        self.test_values = dict()

    def reset(self):
        '''
        Forget loaded data and test_values
        '''
        with self._vlock:
            self._vfilename = None
            self._vdata = None
            self.test_values = dict()

    def _loaded(self, exc_value=ConfigError):
        '''
        Return the validated defaults, reading the config on first use
        '''
        with self._vlock:
            if self._vdata is None:
                paths = msivm._paths.paths # pylint: disable=protected-access
                data = paths.config_dict_from_data(paths.config_filename, paths.config_data, 'defaults', exc_value=exc_value)
                self._vdata = self._validate(data, '_dh', 'defaults', exc_value)
                self._vfilename = paths.config_filename
            return self._vdata

    def _validate(self, data, handler_name, desc, exc_value):
        '''
        Return data checked and made read-only.
        A static method named handler_name (_dh__<key>__<subkey>...)
        takes over validation for that position when it exists;
        list elements use the name <parent>__contents.
        desc names the position for messages, such as defaults[name_templates].
        '''
        handler = getattr(self, handler_name, None)
        if handler:
            return handler(data, desc, exc_value)
        if isinstance(data, (bool, int, str)):
            return data
        if isinstance(data, dict):
            return ReadOnlyDict({k : self._validate(v, f"{handler_name}__{k}", f"{desc}[{k}]", exc_value) for k, v in data.items()})
        if isinstance(data, list):
            return tuple(self._validate(v, f"{handler_name}__contents", f"{desc}[{idx}]", exc_value) for idx, v in enumerate(data))
        raise exc_value("%s has unsupported type %s" % (desc, type(data).__name__))

    @staticmethod
    def _dh__tenant_id_default(value, desc, exc_value):
        '''
        Validate tenant_id_default as a UUID
        '''
        return uuid_normalize(value, key=desc, exc_value=exc_value)

    @staticmethod
    def _dh__subscription_default(value, desc, exc_value):
        '''
        Validate subscription_default as a UUID
        '''
        if not (isinstance(value, str) and RE_UUID_ABS.search(value.strip())):
            raise exc_value("%s must be a subscription ID" % desc)
        return uuid_normalize(value, key=desc, exc_value=exc_value)

    @staticmethod
    def _dh__location_default(value, desc, exc_value):
        '''
        location_default is a non-empty Azure location name
        '''
        if not (isinstance(value, str) and value.strip()):
            raise exc_value("%s must be a non-empty string" % desc)
        return value.strip().lower()

    @staticmethod
    def _dh__resource_groups_keep(value, desc, exc_value):
        '''
        resource_groups_keep is a list of resource group names
        '''
        if not isinstance(value, list):
            raise exc_value("%s must be a list" % desc)
        for idx, name in enumerate(value):
            if not (isinstance(name, str) and name):
                raise exc_value("%s[%d] must be a non-empty string" % (desc, idx))
        return tuple(value)

    @staticmethod
    def _dh__name_templates(value, desc, exc_value):
        '''
        name_templates overrides entries in RESOURCE_NAME_TEMPLATES
        '''
        if not isinstance(value, dict):
            raise exc_value("%s must be a dict" % desc)
        for k, v in value.items():
            if k not in msivm.base_defaults.RESOURCE_NAME_TEMPLATES:
                raise exc_value("%s[%s] is not a known resource name" % (desc, k))
            if not (isinstance(v, str) and v):
                raise exc_value("%s[%s] must be a non-empty string" % (desc, k))
        return ReadOnlyDict(value)

    @staticmethod
    def _key_valid(name):
        return isinstance(name, str) and bool(name) and not name.startswith('_')

    def _lookup(self, name):
        '''
        Return the value for name, or _MISSING
        '''
        with self._vlock:
            if name in self.test_values:
                return self.test_values[name]
            return self._loaded().get(name, _MISSING)

    def __getattr__(self, name):
        if not self._key_valid(name):
            raise AttributeError("%r object has no attribute %r" % (type(self).__name__, name))
        ret = self._lookup(name)
        if ret is _MISSING:
            raise AttributeError("%r is not set in the defaults of configuration file %s" % (name, self._vfilename or '<none>'))
        return ret

    def get(self, name, defaultvalue):
        '''
        Return the value for name, or defaultvalue if it is not set or not a valid key
        '''
        if not self._key_valid(name):
            return defaultvalue
        ret = self._lookup(name)
        return defaultvalue if ret is _MISSING else ret

    def tget(self, key, dtype, exc_value=ConfigError):
        '''
        Return the value for key, which must be a dtype; dtype() if it is not set
        '''
        if not self._key_valid(key):
            return dtype()
        ret = self._lookup(key)
        if ret is _MISSING:
            return dtype()
        if not isinstance(ret, dtype):
            raise exc_value("%r[%r] is %s, expected %s" % (self._vfilename, key, type(ret).__name__, dtype.__name__))
        return ret

    def to_dict(self) -> dict:
        '''
        Return every value, test_values included
        '''
        with self._vlock:
            ret = dict(self._loaded())
            ret.update(self.test_values)
            return ret

scfg = _Scfg()
