#
# tests/test_msi_vm.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Unit tests for msivm.msi_vm
'''
from unittest import mock

import azure.core.exceptions
import pytest

from msivm.azure_tool import Manager
from msivm.btypes import ProvisionStep
from msivm.exceptions import (IdentityMissingError,
                              ProvisioningOrderError,
                              RoleNotFoundError,
                              TeardownNotConfirmed,
                             )
import msivm.msi_vm
from msivm.msi_vm import MsiVmDeploy

from conftest import (PRINCIPAL_ID,
                      RG_ID,
                      RG_NAME,
                      ROLE_ID,
                      SUBSCRIPTION_ID,
                      TENANT_ID,
                      fake_workflow_manager,
                     )

WORKFLOW_CALLS = ['resource_group_create',
                  'storage_account_create',
                  'vnet_create_or_update',
                  'public_ip_create_or_update',
                  'nic_create_or_update',
                  'vm_create_or_update',
                  'vm_extension_create_or_update',
                  'vm_get',
                  'rbac_role_definition_get_by_name',
                  'rbac_role_assignment_create',
                  'resource_list',
                  'resource_group_export_template',
                  'resource_group_delete',
                 ]

def deploy_for(tmp_path, mgr, **kwargs):
    '''
    Return MsiVmDeploy bound to mgr. No SSH key exists unless the caller says otherwise.
    '''
    kwargs.setdefault('pubkey_filename', str(tmp_path / 'no_such_key.pub'))
    kwargs.setdefault('yes', True)
    kwargs.setdefault('storage_account', 'msivmstor42')
    return MsiVmDeploy(az_mgr=mgr, subscription_id=SUBSCRIPTION_ID, tenant_id=TENANT_ID, **kwargs)

def workflow_calls(mgr):
    '''
    Return names of calls made to mgr other than tag generation
    '''
    return [c[0] for c in mgr.method_calls if c[0] != 'tags_get']

def test_run_call_order(tmp_path):
    '''
    A successful run issues every call in the fixed order and completes every step
    '''
    mgr = fake_workflow_manager()
    deploy = deploy_for(tmp_path, mgr)
    deploy.run()
    assert workflow_calls(mgr) == WORKFLOW_CALLS
    assert deploy.steps_done == ProvisionStep.sequence()
    mgr.resource_group_delete.assert_called_once_with(resource_group=RG_NAME, wait=True)

def test_storage_targets_created_group(tmp_path):
    '''
    Storage account creation uses the group name returned by group creation
    '''
    mgr = fake_workflow_manager(resource_group_name='azure-sample-compute-msi')
    deploy = deploy_for(tmp_path, mgr)
    deploy.resource_group_ensure()
    deploy.storage_account_create()
    args, kwargs = mgr.storage_account_create.call_args
    assert args[0] == 'msivmstor42'
    assert kwargs['resource_group'] == 'azure-sample-compute-msi'
    assert args[1].sku.name == 'Premium_LRS'
    assert args[1].encryption.services.blob.enabled is True

def test_storage_sku_and_encryption(tmp_path):
    '''
    --storage_sku and --no_blob_encryption reach the storage request
    '''
    mgr = fake_workflow_manager()
    deploy = deploy_for(tmp_path, mgr, storage_sku='Standard_LRS', blob_encryption=False)
    deploy.resource_group_ensure()
    deploy.storage_account_create()
    parameters = mgr.storage_account_create.call_args[0][1]
    assert parameters.sku.name == 'Standard_LRS'
    assert parameters.encryption.services.blob.enabled is False

def test_storage_sku_invalid(tmp_path):
    '''
    Unknown storage SKUs are rejected at construction
    '''
    with pytest.raises(ValueError):
        deploy_for(tmp_path, fake_workflow_manager(), storage_sku='Cheap_LRS')

def test_role_scope_is_group_id(tmp_path):
    '''
    Role lookup and assignment are scoped to the resource group ID
    '''
    mgr = fake_workflow_manager()
    deploy = deploy_for(tmp_path, mgr)
    deploy.run()
    mgr.rbac_role_definition_get_by_name.assert_called_once_with(role_name='Contributor', scope=RG_ID)
    mgr.rbac_role_assignment_create.assert_called_once_with(RG_ID, ROLE_ID, PRINCIPAL_ID)

def test_role_not_found(tmp_path):
    '''
    Empty role lookup fails before any assignment or teardown
    '''
    mgr = fake_workflow_manager(roles_found=False)
    deploy = deploy_for(tmp_path, mgr)
    with pytest.raises(RoleNotFoundError, match='role not found'):
        deploy.run()
    mgr.rbac_role_assignment_create.assert_not_called()
    mgr.resource_group_delete.assert_not_called()
    assert deploy.steps_done[-1] == ProvisionStep.EXTENSION

def test_identity_missing(tmp_path):
    '''
    A VM without an identity principal never gets a role assignment request
    '''
    mgr = fake_workflow_manager(principal_id='')
    deploy = deploy_for(tmp_path, mgr)
    with pytest.raises(IdentityMissingError):
        deploy.run()
    mgr.rbac_role_assignment_create.assert_not_called()
    mgr.resource_group_delete.assert_not_called()

def test_identity_absent_entirely(tmp_path):
    '''
    A VM whose identity is None is handled like an empty principal
    '''
    mgr = fake_workflow_manager()
    mgr.vm_get.return_value.identity = None
    deploy = deploy_for(tmp_path, mgr)
    with pytest.raises(IdentityMissingError):
        deploy.run()
    mgr.rbac_role_assignment_create.assert_not_called()

def test_ssh_key_present(tmp_path, capsys):
    '''
    With a key file, password auth is disabled and the key is installed for the admin user
    '''
    key = 'ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQC7 tester@example'
    pubkey = tmp_path / 'id_rsa.pub'
    pubkey.write_text(key + '\n')
    mgr = fake_workflow_manager()
    deploy = deploy_for(tmp_path, mgr, pubkey_filename=str(pubkey))
    deploy.run()
    parameters = mgr.vm_create_or_update.call_args[0][1]
    linux = parameters.os_profile.linux_configuration
    assert linux.disable_password_authentication is True
    assert len(linux.ssh.public_keys) == 1
    assert linux.ssh.public_keys[0].key_data == key
    assert linux.ssh.public_keys[0].path == '/home/notAdmin/.ssh/authorized_keys'
    assert parameters.os_profile.admin_password is None
    out = capsys.readouterr().out
    assert "Found SSH public key in %s" % pubkey in out
    assert 'Admin Password is' not in out

def test_ssh_key_absent(tmp_path, capsys):
    '''
    Without a key file, the request has no SSH configuration and a generated
    password that is shown exactly once.
    '''
    mgr = fake_workflow_manager()
    deploy = deploy_for(tmp_path, mgr)
    deploy.run()
    parameters = mgr.vm_create_or_update.call_args[0][1]
    assert parameters.os_profile.linux_configuration is None
    password = parameters.os_profile.admin_password
    assert password
    out = capsys.readouterr().out
    assert out.count(password) == 1
    assert ("Admin Password is: %s" % password) in out

def test_ssh_key_empty(tmp_path, capsys):
    '''
    An empty key file counts as no key: the password branch is used
    '''
    pubkey = tmp_path / 'id_rsa.pub'
    pubkey.write_text('\n')
    mgr = fake_workflow_manager()
    deploy = deploy_for(tmp_path, mgr, pubkey_filename=str(pubkey))
    assert deploy.ssh_key_data_get() is None
    deploy.run()
    parameters = mgr.vm_create_or_update.call_args[0][1]
    assert parameters.os_profile.linux_configuration is None
    password = parameters.os_profile.admin_password
    assert password
    out = capsys.readouterr().out
    assert "Found SSH public key" not in out
    assert ("Admin Password is: %s" % password) in out

def test_admin_password_from_environment(tmp_path, monkeypatch, capsys):
    '''
    A supplied password is used as-is and never printed
    '''
    monkeypatch.setenv('MSIVM_ADMIN_PASSWORD', 'Sup3r-Secret-Passw0rd')
    mgr = fake_workflow_manager()
    deploy = deploy_for(tmp_path, mgr)
    deploy.run()
    parameters = mgr.vm_create_or_update.call_args[0][1]
    assert parameters.os_profile.admin_password == 'Sup3r-Secret-Passw0rd'
    print("password is Sup3r-Secret-Passw0rd")
    out = capsys.readouterr().out
    assert 'Sup3r-Secret-Passw0rd' not in out
    assert 'REDACTED:admin_password' in out
    assert 'Admin Password is' not in out

def test_vm_request_contents(tmp_path):
    '''
    The VM request references the NIC, the image, the VHD in the storage account, and a system identity
    '''
    mgr = fake_workflow_manager()
    deploy = deploy_for(tmp_path, mgr)
    deploy.run()
    name, parameters = mgr.vm_create_or_update.call_args[0]
    assert name == 'sample-msi-vm-msi-vm'
    assert parameters.identity.type == 'SystemAssigned'
    assert parameters.hardware_profile.vm_size == 'Standard_DS2_v2'
    assert parameters.network_profile.network_interfaces[0].id == mgr.nic_create_or_update.return_value.id
    assert parameters.network_profile.network_interfaces[0].primary is True
    assert parameters.storage_profile.image_reference.offer == 'UbuntuServer'
    assert parameters.storage_profile.os_disk.vhd.uri == 'https://msivmstor42.blob.core.windows.net/msivmcontainer/msi-vm.vhd'
    ext_args = mgr.vm_extension_create_or_update.call_args[0]
    assert ext_args[:2] == ('sample-msi-vm-msi-vm', 'msiextension')
    assert ext_args[2].settings == {'port' : '50342'}

def test_nic_binds_subnet_and_public_ip(tmp_path):
    '''
    The NIC request references the first subnet of the vnet and the public IP
    '''
    mgr = fake_workflow_manager()
    deploy = deploy_for(tmp_path, mgr)
    deploy.run()
    parameters = mgr.nic_create_or_update.call_args[0][1]
    ip_config = parameters.ip_configurations[0]
    assert ip_config.subnet.id == mgr.vnet_create_or_update.return_value.subnets[0].id
    assert ip_config.public_ip_address.id == mgr.public_ip_create_or_update.return_value.id

def test_failure_aborts_without_delete(tmp_path):
    '''
    A failing remote call aborts the run; nothing later runs and the group is not deleted
    '''
    mgr = fake_workflow_manager()
    mgr.vm_create_or_update.side_effect = azure.core.exceptions.HttpResponseError(message='quota exceeded')
    deploy = deploy_for(tmp_path, mgr)
    with pytest.raises(azure.core.exceptions.HttpResponseError):
        deploy.run()
    assert workflow_calls(mgr) == WORKFLOW_CALLS[:6]
    assert deploy.steps_done[-1] == ProvisionStep.NIC
    mgr.resource_group_delete.assert_not_called()

def test_epilogue(tmp_path, capsys):
    '''
    The epilogue describes the MSI endpoint and how to connect
    '''
    mgr = fake_workflow_manager()
    deploy = deploy_for(tmp_path, mgr)
    deploy.run()
    out = capsys.readouterr().out
    assert '127.0.0.1:50342' in out
    assert "ssh -p 22 notAdmin@msi-vm-domain-name-label.westus.cloudapp.azure.com" in out
    assert "Deleted: %s" % RG_NAME in out

def test_teardown_confirmed(tmp_path):
    '''
    Pressing Enter deletes the group
    '''
    mgr = fake_workflow_manager()
    prompt = mock.MagicMock(return_value='')
    deploy = deploy_for(tmp_path, mgr, yes=False, input_func=prompt)
    deploy.run()
    prompt.assert_called_once_with()
    mgr.resource_group_delete.assert_called_once_with(resource_group=RG_NAME, wait=True)

@pytest.mark.parametrize('answer', ['no', 'N'])
def test_teardown_declined(tmp_path, answer):
    '''
    A negative answer leaves the group in place
    '''
    mgr = fake_workflow_manager()
    deploy = deploy_for(tmp_path, mgr, yes=False, input_func=lambda: answer)
    with pytest.raises(TeardownNotConfirmed):
        deploy.run()
    mgr.resource_group_delete.assert_not_called()

def test_teardown_end_of_input(tmp_path):
    '''
    End of input is not confirmation
    '''
    mgr = fake_workflow_manager()
    def eof():
        raise EOFError()
    deploy = deploy_for(tmp_path, mgr, yes=False, input_func=eof)
    with pytest.raises(TeardownNotConfirmed):
        deploy.run()
    mgr.resource_group_delete.assert_not_called()

def test_keep(tmp_path):
    '''
    --keep skips both the prompt and the delete
    '''
    mgr = fake_workflow_manager()
    prompt = mock.MagicMock(return_value='')
    deploy = deploy_for(tmp_path, mgr, yes=False, keep=True, input_func=prompt)
    deploy.run()
    prompt.assert_not_called()
    mgr.resource_group_delete.assert_not_called()
    assert ProvisionStep.TEARDOWN not in deploy.steps_done

def test_step_order_enforced(tmp_path):
    '''
    Steps may not run early or twice
    '''
    mgr = fake_workflow_manager()
    deploy = deploy_for(tmp_path, mgr)
    with pytest.raises(ProvisioningOrderError):
        deploy.storage_account_create()
    with pytest.raises(ProvisioningOrderError):
        deploy.teardown()
    deploy.resource_group_ensure()
    with pytest.raises(ProvisioningOrderError):
        deploy.resource_group_ensure()
    with pytest.raises(ProvisioningOrderError):
        deploy.vm_create()
    assert workflow_calls(mgr) == ['resource_group_create']
    mgr.resource_group_delete.assert_not_called()

def _patch_manager(monkeypatch, mgr):
    '''
    Make MsiVmDeploy construct mgr rather than a real Manager
    '''
    factory = mock.MagicMock(return_value=mgr)
    factory.main_add_parser_args_manager = Manager.main_add_parser_args_manager
    monkeypatch.setattr(msivm.msi_vm, 'Manager', factory)
    return factory

def test_main_success(tmp_path, monkeypatch):
    '''
    Command-line success exits 0
    '''
    mgr = fake_workflow_manager()
    factory = _patch_manager(monkeypatch, mgr)
    with pytest.raises(SystemExit) as exc_info:
        MsiVmDeploy.main_with_args(['--subscription_id', SUBSCRIPTION_ID,
                                    '--pubkey_filename', str(tmp_path / 'no_such_key.pub'),
                                    '--storage_account', 'msivmstor7',
                                    '--yes',
                                   ])
    assert exc_info.value.code == 0
    kwargs = factory.call_args[1]
    assert kwargs['subscription_id'] == SUBSCRIPTION_ID
    assert kwargs['resource_group'] == RG_NAME
    assert kwargs['storage_account'] == 'msivmstor7'
    assert workflow_calls(mgr) == WORKFLOW_CALLS

def test_main_failure(tmp_path, monkeypatch):
    '''
    Command-line failure exits non-zero without deleting anything
    '''
    mgr = fake_workflow_manager(roles_found=False)
    _patch_manager(monkeypatch, mgr)
    with pytest.raises(SystemExit) as exc_info:
        MsiVmDeploy.main_with_args(['--subscription_id', SUBSCRIPTION_ID,
                                    '--pubkey_filename', str(tmp_path / 'no_such_key.pub'),
                                    '--yes',
                                   ])
    assert exc_info.value.code == 1
    mgr.resource_group_delete.assert_not_called()

def test_main_requires_subscription(monkeypatch):
    '''
    No subscription anywhere is a usage error
    '''
    _patch_manager(monkeypatch, fake_workflow_manager())
    with pytest.raises(SystemExit) as exc_info:
        MsiVmDeploy.main_with_args(['--yes'])
    assert exc_info.value.code == 1
