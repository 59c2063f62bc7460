#
# msivm/__init__.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Base msivm import
'''
from ._paths import paths
from ._scfg import scfg

__all__ = ['paths',
           'reset_caches',
           'scfg',
          ]

reset_hooks = [scfg.reset,
              ]

def reset_caches(config_filename='', config_data=None):
    '''
    Discard cached content.
    '''
    paths.reset(config_filename=config_filename, config_data=config_data)
    for reset_hook in reset_hooks:
        reset_hook()
