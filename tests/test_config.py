#
# tests/test_config.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Unit tests for config loading (msivm.paths, msivm.scfg)
'''
import pytest

import msivm
from msivm.btypes import ReadOnlyDict
from msivm.exceptions import (ApplicationExit,
                              ConfigError,
                              ConfigNotFoundError,
                             )

from conftest import SUBSCRIPTION_ID

def test_no_config():
    '''
    Without a config file, scfg is empty
    '''
    assert msivm.paths.config_filename == ''
    assert msivm.scfg.get('location_default', 'nowhere') == 'nowhere'
    assert msivm.scfg.tget('resource_groups_keep', tuple) == tuple()
    with pytest.raises(AttributeError):
        msivm.scfg.location_default # pylint: disable=pointless-statement

def test_config_file(tmp_path, monkeypatch):
    '''
    The file named by MSIVM_CONFIG is loaded and validated
    '''
    path = tmp_path / 'msivm.yaml'
    path.write_text(f"defaults:\n  location_default: ' EastUS '\n  subscription_default: '{SUBSCRIPTION_ID.upper()}'\n  resource_groups_keep:\n    - shared\n")
    monkeypatch.setenv('MSIVM_CONFIG', str(path))
    msivm.reset_caches()
    assert msivm.paths.config_filename == str(path)
    assert msivm.scfg.location_default == 'eastus'
    assert msivm.scfg.subscription_default == SUBSCRIPTION_ID
    assert msivm.scfg.tget('resource_groups_keep', tuple) == ('shared',)

def test_config_file_missing(tmp_path):
    '''
    A config file named explicitly must exist
    '''
    msivm.reset_caches(config_filename=str(tmp_path / 'nope.yaml'))
    with pytest.raises(ConfigNotFoundError):
        msivm.scfg.get('location_default', '')

def test_config_file_not_dict(tmp_path):
    '''
    The config file must contain a dict
    '''
    path = tmp_path / 'msivm.yaml'
    path.write_text("- one\n- two\n")
    msivm.reset_caches(config_filename=str(path))
    with pytest.raises(ApplicationExit):
        msivm.scfg.get('location_default', '')

def test_config_file_empty(tmp_path):
    '''
    An empty config file is an empty config
    '''
    path = tmp_path / 'msivm.yaml'
    path.write_text('')
    msivm.reset_caches(config_filename=str(path))
    assert msivm.scfg.to_dict() == dict()

@pytest.mark.parametrize('defaults', [{'subscription_default' : 'not-a-uuid'},
                                      {'tenant_id_default' : 'not-a-uuid'},
                                      {'location_default' : ''},
                                      {'resource_groups_keep' : 'shared'},
                                      {'name_templates' : {'nosuchresource' : 'x'}},
                                      {'name_templates' : {'vm' : ''}},
                                     ])
def test_config_invalid(defaults):
    '''
    Invalid defaults are rejected at load
    '''
    msivm.reset_caches(config_data={'defaults' : defaults})
    with pytest.raises(ConfigError):
        msivm.scfg.to_dict()

def test_config_defaults_not_dict():
    '''
    defaults must be a dict
    '''
    msivm.reset_caches(config_data={'defaults' : ['x']})
    with pytest.raises(ConfigError):
        msivm.scfg.get('location_default', '')

def test_config_read_only():
    '''
    Nested config values are read-only
    '''
    msivm.reset_caches(config_data={'defaults' : {'name_templates' : {'vm' : 'vm-{{ vm_name }}'}}})
    templates = msivm.scfg.tget('name_templates', dict)
    assert isinstance(templates, ReadOnlyDict)
    with pytest.raises(TypeError):
        templates['vm'] = 'other'

def test_tget_type_mismatch():
    '''
    tget rejects a value of the wrong type
    '''
    msivm.reset_caches(config_data={'defaults' : {'extra' : 'text'}})
    with pytest.raises(ConfigError):
        msivm.scfg.tget('extra', dict)

def test_test_values():
    '''
    test_values override the loaded config
    '''
    msivm.reset_caches(config_data={'defaults' : {'location_default' : 'westus2'}})
    msivm.scfg.test_values['location_default'] = 'northeurope'
    assert msivm.scfg.location_default == 'northeurope'
    msivm.reset_caches()
    assert msivm.scfg.get('location_default', '') == ''
