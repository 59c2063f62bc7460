#
# tests/test_vm_params.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Unit tests for msivm.vm_params
'''
import string
import types

import pytest

import msivm.clouds
import msivm.vm_params

from conftest import (PRINCIPAL_ID,
                      RG_NAME,
                      ROLE_ID,
                      azure_id,
                     )

NIC_ID = azure_id(RG_NAME, 'Microsoft.Network', 'networkInterfaces', 'nic1')
VHD_URI = 'https://msivmstor1.blob.core.windows.net/msivmcontainer/vm1.vhd'

def test_storage_account_params():
    '''
    Storage accounts carry the sku and blob encryption setting
    '''
    params = msivm.vm_params.storage_account_params('westus', sku_name='Standard_LRS', blob_encryption=False)
    assert params.sku.name == 'Standard_LRS'
    assert params.kind == 'Storage'
    assert params.encryption.services.blob.enabled is False
    params = msivm.vm_params.storage_account_params('westus')
    assert params.sku.name == 'Premium_LRS'
    assert params.encryption.services.blob.enabled is True

def test_vnet_params():
    '''
    The vnet has one subnet and the configured DNS servers
    '''
    params = msivm.vm_params.vnet_params('westus', 'subnet1')
    assert params.address_space.address_prefixes == ['10.0.0.0/16']
    assert params.dhcp_options.dns_servers == ['8.8.8.8']
    assert [(x.name, x.address_prefix) for x in params.subnets] == [('subnet1', '10.0.0.0/24')]

def test_public_ip_and_nic_params():
    '''
    The NIC binds subnet and public IP by ID
    '''
    ip = msivm.vm_params.public_ip_params('westus', 'label1')
    assert ip.public_ip_allocation_method == 'Dynamic'
    assert ip.dns_settings.domain_name_label == 'label1'
    subnet_id = azure_id(RG_NAME, 'Microsoft.Network', 'virtualNetworks', 'vnet1', 'subnets', 'subnet1')
    ip_id = azure_id(RG_NAME, 'Microsoft.Network', 'publicIPAddresses', 'ip1')
    nic = msivm.vm_params.nic_params('westus', 'cfg1', subnet_id, ip_id)
    ip_config = nic.ip_configurations[0]
    assert ip_config.name == 'cfg1'
    assert ip_config.subnet.id == subnet_id
    assert ip_config.public_ip_address.id == ip_id

def test_vhd_uri():
    '''
    The VHD lives in the named container of the account's blob endpoint
    '''
    account = types.SimpleNamespace(name='msivmstor1', primary_endpoints=types.SimpleNamespace(blob='https://msivmstor1.blob.core.windows.net/'))
    assert msivm.vm_params.vhd_uri(account, 'msivmcontainer', 'vm1') == VHD_URI
    account = types.SimpleNamespace(name='msivmstor1', primary_endpoints=None)
    assert msivm.vm_params.vhd_uri(account, 'msivmcontainer', 'vm1') == VHD_URI
    cloud = msivm.clouds.cloud_get('AzureChinaCloud')
    assert msivm.vm_params.vhd_uri(account, 'c', 'vm1', cloud=cloud) == 'https://msivmstor1.blob.core.chinacloudapi.cn/c/vm1.vhd'

def test_vm_params_ssh():
    '''
    With a key, password authentication is off and no password is sent
    '''
    params = msivm.vm_params.vm_params('westus', 'vm1', 'notAdmin', 'disk1', VHD_URI, NIC_ID,
                                       admin_password='ignored', ssh_key_data='ssh-rsa AAAA test')
    os_profile = params.os_profile
    assert os_profile.admin_password is None
    assert os_profile.linux_configuration.disable_password_authentication is True
    key = os_profile.linux_configuration.ssh.public_keys[0]
    assert key.path == '/home/notAdmin/.ssh/authorized_keys'
    assert key.key_data == 'ssh-rsa AAAA test'
    assert params.identity.type == 'SystemAssigned'
    assert params.storage_profile.os_disk.vhd.uri == VHD_URI
    assert params.storage_profile.image_reference.offer == 'UbuntuServer'
    assert params.network_profile.network_interfaces[0].id == NIC_ID
    assert params.hardware_profile.vm_size == 'Standard_DS2_v2'

def test_vm_params_password():
    '''
    Without a key, the request carries a password and no ssh configuration
    '''
    params = msivm.vm_params.vm_params('westus', 'vm1', 'notAdmin', 'disk1', VHD_URI, NIC_ID,
                                       admin_password='Pa55word!', vm_size='Standard_B1s')
    assert params.os_profile.admin_password == 'Pa55word!'
    assert params.os_profile.linux_configuration is None
    assert params.hardware_profile.vm_size == 'Standard_B1s'
    with pytest.raises(ValueError):
        msivm.vm_params.vm_params('westus', 'vm1', 'notAdmin', 'disk1', VHD_URI, NIC_ID)

def test_extension_and_role_params():
    '''
    Extension and role assignment requests
    '''
    ext = msivm.vm_params.vm_extension_params('westus')
    assert ext.publisher == 'Microsoft.ManagedIdentity'
    assert ext.type_properties_type == 'ManagedIdentityExtensionForLinux'
    assert ext.settings == {'port' : '50342'}
    assignment = msivm.vm_params.role_assignment_params(ROLE_ID, PRINCIPAL_ID)
    assert assignment.role_definition_id == ROLE_ID
    assert assignment.principal_id == PRINCIPAL_ID

def test_admin_password_generate():
    '''
    Generated passwords contain every character class
    '''
    seen = set()
    for _ in range(20):
        pw = msivm.vm_params.admin_password_generate()
        assert len(pw) == 20
        assert any(c in string.ascii_lowercase for c in pw)
        assert any(c in string.ascii_uppercase for c in pw)
        assert any(c in string.digits for c in pw)
        assert any(c in '!#%+-.:=@^_' for c in pw)
        seen.add(pw)
    assert len(seen) == 20
    assert len(msivm.vm_params.admin_password_generate(length=4)) == 4
    with pytest.raises(ValueError):
        msivm.vm_params.admin_password_generate(length=3)

def test_request_models_wire_shape():
    '''
    Every request model builds and serializes to the REST shape Azure expects
    '''
    subnet_id = azure_id(RG_NAME, 'Microsoft.Network', 'virtualNetworks', 'vnet1', 'subnets', 'subnet1')
    ip_id = azure_id(RG_NAME, 'Microsoft.Network', 'publicIPAddresses', 'ip1')

    assert msivm.vm_params.resource_group_params('westus', tags={'owner' : 'tester'}).serialize() == {'location' : 'westus', 'tags' : {'owner' : 'tester'}}
    assert msivm.vm_params.export_template_request().serialize()['resources'] == ['*']

    storage = msivm.vm_params.storage_account_params('westus').serialize()
    assert storage['sku']['name'] == 'Premium_LRS'
    assert storage['kind'] == 'Storage'

    vnet = msivm.vm_params.vnet_params('westus', 'subnet1').serialize()
    assert vnet['properties']['subnets'][0]['name'] == 'subnet1'

    nic = msivm.vm_params.nic_params('westus', 'cfg1', subnet_id, ip_id).serialize()
    ip_config = nic['properties']['ipConfigurations'][0]['properties']
    assert ip_config['subnet']['id'] == subnet_id
    assert ip_config['publicIPAddress']['id'] == ip_id

    vm = msivm.vm_params.vm_params('westus', 'vm1', 'notAdmin', 'disk1', VHD_URI, NIC_ID, admin_password='Pa55word!xyz').serialize()
    assert vm['identity']['type'] == 'SystemAssigned'
    assert vm['properties']['osProfile']['computerName'] == 'vm1'
    assert vm['properties']['storageProfile']['osDisk']['vhd']['uri'] == VHD_URI

    ext = msivm.vm_params.vm_extension_params('westus').serialize()
    assert ext['properties']['publisher'] == 'Microsoft.ManagedIdentity'
    assert ext['properties']['type'] == 'ManagedIdentityExtensionForLinux'
    assert ext['properties']['typeHandlerVersion'] == '1.0'
    assert ext['properties']['settings'] == {'port' : '50342'}

    assignment = msivm.vm_params.role_assignment_params(ROLE_ID, PRINCIPAL_ID).serialize()
    assert assignment['properties']['roleDefinitionId'] == ROLE_ID
    assert assignment['properties']['principalType'] == 'ServicePrincipal'
