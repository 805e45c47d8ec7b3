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

IPMI_BMC_ADDRESS = 0x20
IPMI_REMOTE_SWID = 0x81  # table 5-4, software ids may be 0x81 through 0x8d
IPMI_DCMI_GROUP = 0xdc

RMCP_HEADER = b'\x06\x00\xff\x07'

payload_types = {
    'ipmi': 0x0,
    'rmcpplusopenreq': 0x10,
    'rmcpplusopenresponse': 0x11,
    'rakp1': 0x12,
    'rakp2': 0x13,
    'rakp3': 0x14,
    'rakp4': 0x15,
}

session_payload_types = frozenset(range(0x10, 0x16))

# payload type byte flags, table 13-8
PAYLOAD_ENCRYPTED = 0b10000000
PAYLOAD_AUTHENTICATED = 0b01000000

authtypes = {
    'none': 0,
    'rmcpplus': 6,
}

# table 13-17
auth_algorithms = {
    'none': 0,
    'hmac-sha1': 1,
    'hmac-md5': 2,
    'hmac-sha256': 3,
}

# table 13-18
integrity_algorithms = {
    'none': 0,
    'hmac-sha1-96': 1,
    'hmac-md5-128': 2,
    'md5-128': 3,
    'hmac-sha256-128': 4,
}

# table 13-19
confidentiality_algorithms = {
    'none': 0,
    'aes-cbc-128': 1,
    'xrc4-128': 2,
    'xrc4-40': 3,
}

privilege_levels = {
    'callback': 1,
    'user': 2,
    'operator': 3,
    'administrator': 4,
    'oem': 5,
}

# role byte of RAKP 1, bit 4 selects name-only lookup
NAME_ONLY_LOOKUP = 0x10

rmcp_codes = {
    1: ("Insufficient resources to create new session (wait for existing "
        "sessions to timeout)"),
    2: "Invalid Session ID",
    3: "Invalid payload type",
    4: "Invalid authentication algorithm",
    5: "Invalid integrity algorithm",
    6: "No matching authentication payload",
    7: "No matching integrity payload",
    8: "Inactive Session ID",
    9: "Invalid role",
    0xa: "Unauthorized role or privilege level requested",
    0xb: "Insufficient resources to create a session at the requested role",
    0xc: "Invalid username length",
    0xd: "Unauthorized name",
    0xe: "Unauthorized GUID",
    0xf: "Invalid integrity check value",
    0x10: "Invalid confidentiality algorithm",
    0x11: "No Cipher suite match with proposed security algorithms",
    0x12: "Illegal or unrecognized parameter",
}

# keyed by request netfn and command
command_completion_codes = {
    (6, 0x3b): {  # Set session privilege level
        0x80: "User is not allowed requested privilege level",
        0x81: "Requested privilege level is not allowed over this channel",
        0x82: "Cannot disable user level authentication",
    },
    (6, 0x3c): {  # Close session
        0x87: "Invalid session ID in request",
        0x88: "Invalid session handle in request",
    },
    (0x2c, 0x3): {  # DCMI get power limit
        0x80: "No Active Set Power Limit",
    },
}

ipmi_completion_codes = {
    0x00: "Success",
    0xc0: "Node Busy",
    0xc1: "Invalid command",
    0xc2: "Invalid command for given LUN",
    0xc3: "Timeout while processing command",
    0xc4: "Out of storage space on BMC",
    0xc5: "Reservation canceled or invalid reservation ID",
    0xc6: "Request data truncated",
    0xc7: "Request data length invalid",
    0xc8: "Request data field length limit exceeded",
    0xc9: "Parameter out of range",
    0xca: "Cannot return number of requested data bytes",
    0xcb: "Requested sensor, data, or record not present",
    0xcc: "Invalid data field in request",
    0xcd: "Command illegal for specified sensor or record type",
    0xce: "Command response could not be provided",
    0xcf: "Cannot execute duplicated request",
    0xd0: "SDR repository in update mode",
    0xd1: "Device in firmware update mode",
    0xd2: "BMC initialization in progress",
    0xd3: "Internal destination unavailable",
    0xd4: "Insufficient privilege level or firmware firewall",
    0xd5: "Command not supported in present state",
    0xd6: "Cannot execute command because subfunction disabled or unavailable",
    0xff: "Unspecified",
}
