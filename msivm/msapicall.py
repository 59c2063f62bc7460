#
# msivm/msapicall.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Provide wrappers for Azure SDK calls.

Calls are not retried here. The SDK pipelines do their own transport-level
retries; once an error surfaces to this layer, it is classified, logged,
and re-raised so the workflow aborts on the first failure.

Long-running operations (track2 SDKs):
    op = azure.core.polling.LROPoller
    op.wait(timeout) / op.done() / op.result()
'''
import http.client
import time

import azure.core.exceptions
import urllib3.exceptions

from msivm.util import (elapsed,
                        getframe,
                       )

URLLIB3_SDK_EXCEPTIONS = (urllib3.exceptions.HTTPError,
                          urllib3.exceptions.HTTPWarning,
                         )

AZURE_SDK_EXCEPTIONS = (azure.core.exceptions.HttpResponseError,
                        azure.core.exceptions.ServiceRequestError,
                       ) + URLLIB3_SDK_EXCEPTIONS

# Error codes (compared without regard to case) that place an error in a bucket
MISSING_CODES = ('Request_ResourceNotFound',
                 'ResourceGroupNotFound',
                 'ResourceNotFound',
                )
AUTH_CODES = ('AuthenticationFailed',
              'AuthorizationFailed',
              'ExpiredAuthenticationToken',
             )
QUOTA_CODES = ('MaxStorageAccountsCountPerSubscriptionExceeded',
               'OperationNotAllowed',
               'QuotaExceeded',
              )

class Caught():
    '''
    Classification of an exception raised by an SDK call.
    error_code and error_target come from the service error body when there is one.
    '''
    # Checked in this order by reason()
    REASONS = ('is_server_rejected_auth',
               'is_missing',
               'is_quota',
               'is_urllib3',
               'is_throttle',
               'is_conflict',
              )

    def __init__(self, exc):
        self.exc = exc
        self.status_code = getattr(exc, 'status_code', None)
        try:
            self.status_code_int = int(self.status_code)
        except (TypeError, ValueError):
            self.status_code_int = -1
        self.error_code = None
        self.error_target = None
        if self.is_urllib3():
            return
        error = getattr(exc, 'error', None)
        code = getattr(exc, 'error_code', None) or getattr(error, 'code', None)
        if code:
            self.error_code = str(code)
        self.error_target = getattr(error, 'target', None)

    def __repr__(self):
        return "%s(%r, status_code=%r, error_code=%r)" % (type(self).__name__, self.exc, self.status_code, self.error_code)

    def any_code_matches(self, *codes):
        '''
        Return whether error_code is one of codes
        '''
        if not self.error_code:
            return False
        return self.error_code.lower() in {code.lower() for code in codes}

    def is_server_rejected_auth(self):
        return isinstance(self.exc, azure.core.exceptions.ClientAuthenticationError) or self.any_code_matches(*AUTH_CODES)

    def is_missing(self):
        return (self.status_code_int == http.client.NOT_FOUND) \
          or isinstance(self.exc, azure.core.exceptions.ResourceNotFoundError) \
          or self.any_code_matches(*MISSING_CODES)

    def is_quota(self):
        return self.any_code_matches(*QUOTA_CODES)

    def is_urllib3(self):
        return isinstance(self.exc, URLLIB3_SDK_EXCEPTIONS)

    def is_throttle(self):
        return self.status_code_int == http.client.TOO_MANY_REQUESTS

    def is_conflict(self):
        return (self.status_code_int == http.client.CONFLICT) or isinstance(self.exc, azure.core.exceptions.ResourceExistsError)

    def reason(self):
        '''
        Return the name of the first REASONS check that holds, or None
        '''
        for name in self.REASONS:
            if getattr(self, name)():
                return name
        return None

def msapicall(logger, op, *args, **kwargs):
    '''
    execute op(*args, **kwargs) and return the result.
    On SDK errors, log the classified reason and re-raise.
    Resource-missing errors are logged at debug because callers
    commonly treat them as a None result.
    '''
    try:
        return op(*args, **kwargs)
    except AZURE_SDK_EXCEPTIONS as exc:
        caught = Caught(exc)
        reason = caught.reason() or 'other'
        if caught.is_missing():
            logger.debug("%s op=%s [%s] %r", getframe(0), _op_desc(op), reason, exc)
        else:
            logger.warning("%s op=%s [%s] error_code=%s %r", getframe(0), _op_desc(op), reason, caught.error_code, exc)
        raise

def _op_desc(op):
    '''
    Return a short description of op for logging
    '''
    return getattr(op, '__qualname__', None) or getattr(op, '__name__', None) or repr(op)

# Seconds between progress messages while waiting on a long-running operation
LRO_WAIT_LOG_INTERVAL = 30.0

def lro_wait(op, desc, logger, log_interval=LRO_WAIT_LOG_INTERVAL):
    '''
    Block until the long-running operation op completes.
    desc describes op in log messages.
    Returns op. Raises the SDK error if the operation failed.
    '''
    t0 = time.time()
    logger.debug("%s wait for %s", getframe(0), desc)
    while not op.done():
        try:
            op.wait(timeout=log_interval)
        except AZURE_SDK_EXCEPTIONS as exc:
            caught = Caught(exc)
            logger.warning("%s failed after %.1f seconds [%s] %r", desc, elapsed(t0), caught.reason() or 'other', exc)
            raise
        if not op.done():
            logger.info("waiting for %s (%.1f seconds, status %s)", desc, elapsed(t0), op.status())
    logger.debug("%s complete after %.1f seconds (status %s)", desc, elapsed(t0), op.status())
    return op
