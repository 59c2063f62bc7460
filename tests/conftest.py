#
# tests/conftest.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Shared fixtures for msivm unit tests
'''
import types
from unittest import mock

import pytest

import msivm
import msivm.common
import msivm.output
from msivm.output import TextIOWrapperFilter

SUBSCRIPTION_ID = '11111111-2222-3333-4444-555555555555'
TENANT_ID = 'aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee'
PRINCIPAL_ID = '99999999-8888-7777-6666-555555555555'
RG_NAME = 'azure-sample-compute-msi'
RG_ID = f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/{RG_NAME}"
ROLE_ID = f"/subscriptions/{SUBSCRIPTION_ID}/providers/Microsoft.Authorization/roleDefinitions/b24988ac-6180-42a0-ab88-20f7382dd24c"

@pytest.fixture(autouse=True)
def msivm_reset(monkeypatch, capsys): # pylint: disable=unused-argument
    '''
    Give every test clean config and redactions. capsys is requested so that
    stdout/stderr capture by msivm.output is undone before pytest undoes its own.
    '''
    for name in ('AZURE_SUBSCRIPTION_ID', 'AZURE_TENANT_ID', 'AZURE_CLIENT_ID', 'AZURE_CLIENT_SECRET',
                 'MSIVM_ADMIN_PASSWORD', 'MSIVM_CONFIG', 'MSIVM_RESOURCE_GROUP'):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv('MSIVM_USERNAME', 'tester')
    monkeypatch.setattr(msivm.common.Application, 'LOG_LEVEL_PYTEST', 'debug')
    msivm.paths.cd_cache_reset()
    msivm.reset_caches()
    TextIOWrapperFilter.redactions_clear()
    yield
    msivm.output.uncapture_for_pytest()
    TextIOWrapperFilter.redactions_clear()
    msivm.reset_caches()

def azure_id(resource_group, provider, resource_type, name, *sub):
    '''
    Return a resource ID string in this test subscription
    '''
    ret = f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/{resource_group}/providers/{provider}/{resource_type}/{name}"
    if sub:
        ret += '/' + '/'.join(sub)
    return ret

def fake_resource_group(name=RG_NAME, tags=None):
    '''
    Return an object shaped like azure.mgmt.resource.resources.models.ResourceGroup
    '''
    return types.SimpleNamespace(name=name,
                                 id=f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/{name}",
                                 location='westus',
                                 tags=tags or {'owner' : 'tester'},
                                 properties=types.SimpleNamespace(provisioning_state='Succeeded'))

def fake_workflow_manager(resource_group_name=RG_NAME, principal_id=PRINCIPAL_ID, roles_found=True):
    '''
    Return a mock msivm.azure_tool.Manager whose operations return
    plausible results for the MSI VM workflow.
    '''
    from msivm.azure_tool import Manager # pylint: disable=import-outside-toplevel
    mgr = mock.MagicMock(spec=Manager)
    rg = fake_resource_group(name=resource_group_name)
    mgr.tags_get.return_value = {'owner' : 'tester'}
    mgr.resource_group_create.return_value = rg
    mgr.storage_account_create.return_value = types.SimpleNamespace(name='msivmstor42',
                                                                    id=azure_id(rg.name, 'Microsoft.Storage', 'storageAccounts', 'msivmstor42'),
                                                                    primary_endpoints=types.SimpleNamespace(blob='https://msivmstor42.blob.core.windows.net/'))
    vnet_id = azure_id(rg.name, 'Microsoft.Network', 'virtualNetworks', 'sample-msi-vnet')
    mgr.vnet_create_or_update.return_value = types.SimpleNamespace(name='sample-msi-vnet',
                                                                   id=vnet_id,
                                                                   subnets=[types.SimpleNamespace(name='msiSampleSubnet', id=vnet_id+'/subnets/msiSampleSubnet')])
    mgr.public_ip_create_or_update.return_value = types.SimpleNamespace(name='sample-msi-pubip',
                                                                        id=azure_id(rg.name, 'Microsoft.Network', 'publicIPAddresses', 'sample-msi-pubip'),
                                                                        dns_settings=types.SimpleNamespace(fqdn='msi-vm-domain-name-label.westus.cloudapp.azure.com'))
    mgr.nic_create_or_update.return_value = types.SimpleNamespace(name='sample-msi-nic-msi-vm',
                                                                  id=azure_id(rg.name, 'Microsoft.Network', 'networkInterfaces', 'sample-msi-nic-msi-vm'))
    vm = types.SimpleNamespace(name='sample-msi-vm-msi-vm',
                               id=azure_id(rg.name, 'Microsoft.Compute', 'virtualMachines', 'sample-msi-vm-msi-vm'),
                               identity=types.SimpleNamespace(type='SystemAssigned', principal_id=principal_id))
    mgr.vm_create_or_update.return_value = vm
    mgr.vm_extension_create_or_update.return_value = types.SimpleNamespace(name='msiextension')
    mgr.vm_get.return_value = vm
    if roles_found:
        mgr.rbac_role_definition_get_by_name.return_value = types.SimpleNamespace(name='b24988ac-6180-42a0-ab88-20f7382dd24c', id=ROLE_ID, role_name='Contributor')
    else:
        mgr.rbac_role_definition_get_by_name.return_value = None
    mgr.rbac_role_assignment_create.return_value = types.SimpleNamespace(name='assignment')
    mgr.resource_list.return_value = [types.SimpleNamespace(name='sample-msi-vnet', type='Microsoft.Network/virtualNetworks', location='westus')]
    mgr.resource_group_export_template.return_value = {'resources' : [{'type' : 'Microsoft.Network/virtualNetworks'}]}
    mgr.resource_group_delete.return_value = None
    return mgr
