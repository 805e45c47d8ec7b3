#!/usr/bin/env python
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

"""Issue one command to one or more BMCs over an RMCP+ session"""

import logging
import os
import sys

import pyrmcp.exceptions as exc
from pyrmcp.ipmi import command


def docommand(args, ipmisession):
    command = args[0]
    args = args[1:]
    print("Logged into %s" % ipmisession.bmc)
    if command == 'power':
        value = ipmisession.get_power()
        print("%s: %s" % (ipmisession.bmc, value['powerstate']))
    elif command == 'deviceid':
        print(ipmisession.get_device_id())
    elif command == 'guid':
        print(ipmisession.get_device_guid())
    elif command == 'powerlimit':
        print(ipmisession.get_power_limit())
    elif command == 'raw':
        print(ipmisession.raw_command(
              netfn=int(args[0], 0),
              command=int(args[1], 0),
              data=[int(x, 16) for x in args[2:]]))
    else:
        print("Unknown command %s" % command)
        return 1
    return 0


def usage():
    print("Usage:")
    print(" IPMIPASSWORD=password %s [--debug] bmc username <cmd> <optarg>"
          % sys.argv[0])
    print(" cmd: power, deviceid, guid, powerlimit, raw netfn command data..")


def main():
    argv = sys.argv[1:]
    if argv and argv[0] == '--debug':
        logging.basicConfig(level=logging.DEBUG)
        argv = argv[1:]
    if len(argv) < 3 or 'IPMIPASSWORD' not in os.environ:
        usage()
        return 1

    password = os.environ['IPMIPASSWORD']
    os.environ['IPMIPASSWORD'] = ""
    bmcs = argv[0].split(',')
    userid = argv[1]

    rc = 0
    for bmc in bmcs:
        try:
            with command.Command(bmc=bmc, userid=userid,
                                 password=password) as ipmicmd:
                rc |= docommand(argv[2:], ipmicmd)
        except exc.PyrmcpException as e:
            print("%s: %s" % (bmc, e))
            rc = 1
    return rc


if __name__ == '__main__':
    sys.exit(main())
