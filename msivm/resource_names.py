#
# msivm/resource_names.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Generate the names of the resources created for one MSI VM.
Names come from jinja2 templates in base_defaults.RESOURCE_NAME_TEMPLATES,
optionally overridden per key by defaults.name_templates in the config.
'''
import random

import msivm
from msivm.azresourceid import RE_STORAGE_ACCOUNT_ABS
import msivm.base_defaults

def name_templates():
    '''
    Return a dict of effective templates
    '''
    ret = dict(msivm.base_defaults.RESOURCE_NAME_TEMPLATES)
    ret.update(msivm.scfg.tget('name_templates', dict))
    return ret

def storage_suffix_generate():
    '''
    Return a random numeric suffix for the storage account name.
    Storage account names are global, so the suffix makes collisions less likely.
    '''
    return random.randint(0, msivm.base_defaults.STORAGE_SUFFIX_MAX)

class ResourceNames():
    '''
    Names for every resource of one MSI VM.
    app is a msivm.common.Application; its jinja environment
    and substitutions are used to render the templates.
    '''
    def __init__(self, app, vm_name, storage_account='', storage_suffix=None, exc_value=ValueError):
        if not vm_name:
            raise exc_value("invalid vm_name %r" % vm_name)
        self.vm_name = vm_name
        self.storage_suffix = storage_suffix if storage_suffix is not None else storage_suffix_generate()
        templates = name_templates()
        subs = {'vm_name' : self.vm_name,
                'storage_suffix' : self.storage_suffix,
               }
        self._names = dict()
        for key, template in sorted(templates.items()):
            value = app.jinja_effective(template, key=key, **subs)
            if not value:
                raise exc_value("resource name template %r for %r renders empty" % (template, key))
            self._names[key] = value
        if storage_account:
            self._names['storage_account'] = storage_account
        if not RE_STORAGE_ACCOUNT_ABS.search(self._names['storage_account']):
            raise exc_value("invalid storage account name %r" % self._names['storage_account'])

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self._names)

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(name)
        try:
            return self._names[name]
        except KeyError as exc:
            raise AttributeError("%r object has no attribute %r" % (type(self).__name__, name)) from exc

    def to_dict(self):
        '''
        Return names in dict form
        '''
        return dict(self._names)
