# vim: tabstop=4 shiftwidth=4 softtabstop=4

# Copyright 2013 IBM Corporation
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import pyrmcp.exceptions as exc
from pyrmcp.ipmi import messages
from pyrmcp.ipmi.private import session


class Command(object):
    """Send IPMI commands to BMCs.

    This object represents a persistent session to an IPMI device (bmc) and
    allows the caller to reuse a single session to issue multiple commands.
    Calls block until the BMC answers or the session timeout expires.

    Either pass connection parameters, in which case a session is created and
    logged in, or pass an existing Session in ipmi_session.

    :param bmc: hostname or ip address of the BMC
    :param userid: username to use to connect
    :param password: password to connect to the BMC
    :param kg: Optional parameter to use if BMC has a particular Kg configured
    :param privlevel: privilege level to request, administrator by default
    :param ciphersuites: cipher suite ids acceptable to the caller
    :param timeout: seconds to wait for each reply
    :param ipmi_session: an already constructed session.Session
    """

    def __init__(self, bmc=None, userid=None, password=None, port=623,
                 kg=None, privlevel=4, ciphersuites=None, timeout=None,
                 ipmi_session=None):
        ownsession = ipmi_session is None
        if ownsession:
            if bmc is None or userid is None or password is None:
                raise exc.InvalidParameterValue(
                    'bmc, userid and password are required without a session')
            ipmi_session = session.Session(bmc=bmc,
                                           userid=userid,
                                           password=password,
                                           port=port,
                                           kg=kg,
                                           privlevel=privlevel,
                                           ciphersuites=ciphersuites,
                                           timeout=timeout)
        self.ipmi_session = ipmi_session
        self.bmc = ipmi_session.bmc
        if not ipmi_session.established:
            try:
                ipmi_session.login()
            except Exception:
                # nobody else holds a session built here to close its socket
                if ownsession:
                    ipmi_session.close()
                raise

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.ipmi_session.close()

    def exchange(self, request, response, timeout=None, cancel=None):
        return self.ipmi_session.exchange(request, response, timeout=timeout,
                                          cancel=cancel)

    def get_device_id(self):
        response = self.exchange(messages.GetDeviceIdRequest(),
                                 messages.GetDeviceIdResponse())
        return {
            'device_id': response.device_id,
            'device_revision': response.device_revision,
            'firmware': '%d.%02x' % (response.major_firmware_revision,
                                     response.minor_firmware_revision),
            'ipmi_version': response.ipmi_version,
            'manufacturer_id': response.manufacturer_id,
            'product_id': response.product_id,
        }

    def get_device_guid(self, mode='smbios'):
        """Get the GUID of the management controller

        :param mode: byte order the BMC reports the GUID in, one of
                     'smbios', 'ipmi' or 'rfc4122'
        :returns: str -- the GUID in canonical form
        """
        response = self.exchange(messages.GetDeviceGuidRequest(),
                                 messages.GetDeviceGuidResponse(mode))
        return str(response.guid)

    def get_system_guid(self, mode='smbios'):
        response = self.exchange(messages.GetSystemGuidRequest(),
                                 messages.GetSystemGuidResponse(mode))
        return str(response.guid)

    def get_power(self):
        """Get current power state of the managed system

        The response, if successful, should contain 'powerstate' key and
        either 'on' or 'off' to indicate current state.

        :returns: dict -- {'powerstate': value}
        """
        response = self.exchange(messages.GetChassisStatusRequest(),
                                 messages.GetChassisStatusResponse())
        return {'powerstate': 'on' if response.powered_on else 'off'}

    def get_power_limit(self):
        """Get the active DCMI power limit

        Raises CommandFailed with code 0x80 when no limit is active.
        """
        response = self.exchange(messages.GetDcmiPowerLimitRequest(),
                                 messages.GetDcmiPowerLimitResponse())
        return {
            'exception_action': response.exception_action,
            'power_limit': response.power_limit,
            'correction_time': response.correction_time,
            'sampling_period': response.sampling_period,
        }

    def xraw_command(self, netfn, command, data=(), timeout=None):
        """Send raw ipmi command to BMC, raising exception on error

        :param netfn: Net function number
        :param command: Command value
        :param data: Command data as a tuple or list
        :param timeout: A custom time to wait for the reply
        :returns: dict -- netfn, command, code and data as bytes
        """
        response = self.exchange(messages.RawRequest(netfn, command, data),
                                 messages.RawResponse(netfn, command),
                                 timeout=timeout)
        return {'netfn': netfn + 1, 'command': command, 'code': 0,
                'data': response.data}

    def raw_command(self, netfn, command, data=(), timeout=None):
        """Send raw ipmi command to BMC

        This allows arbitrary IPMI bytes to be issued.  This is commonly used
        for certain vendor specific commands.  A non-zero completion code is
        reported in the 'error' and 'code' keys rather than raised.

        Example: ipmicmd.raw_command(netfn=0,command=4,data=(5))

        :param netfn: Net function number
        :param command: Command value
        :param data: Command data as a tuple or list
        :param timeout: A custom amount of time to wait for the reply
        :returns: dict -- The response from IPMI device
        """
        try:
            return self.xraw_command(netfn, command, data, timeout)
        except exc.CommandFailed as e:
            return {'netfn': netfn + 1, 'command': command, 'code': e.code,
                    'error': e.description}

    def logout(self):
        return self.ipmi_session.logout()
