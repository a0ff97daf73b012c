# Copyright 2022 TIER IV, INC. All rights reserved.
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
"""Entrypoint of abupdater."""


from __future__ import annotations

import argparse
import errno
import logging
import os
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from abupdater import __version__
from abupdater import errors as ab_errors

logger = logging.getLogger(__name__)


#
# ------ components assembling ------ #
#


def _get_slots():
    from abupdater.boot_control import SlotPair
    from abupdater.configs.cfg import cfg

    return SlotPair(cfg.SLOT_IDS)


def _get_store():
    from abupdater.boot_control import SlotStateStore
    from abupdater.configs.cfg import cfg

    return SlotStateStore(
        Path(cfg.STATE_DPATH) / cfg.SLOT_STATE_FNAME, slots=_get_slots()
    )


def _get_selector():
    from abupdater.boot_control import RPIBootSelector
    from abupdater.configs.cfg import cfg

    return RPIBootSelector(
        slots=_get_slots(),
        root_dev_slot_map=cfg.ROOT_DEV_SLOT_MAP,
        system_boot_mp=cfg.SYSTEM_BOOT_MOUNT_POINT,
        proc_cmdline_fpath=cfg.PROC_CMDLINE_FPATH,
        cmdline_txt_fname=cfg.CMDLINE_TXT_FNAME,
        root_cmdline_key=cfg.ROOT_CMDLINE_KEY,
    )


def _get_lease():
    from abupdater._utils import UpdateLease
    from abupdater.configs.cfg import cfg

    return UpdateLease(cfg.UPDATE_LOCK_FPATH)


def _get_reporter():
    from abupdater.configs.cfg import cfg
    from abupdater.status_reporter import StatusReporter

    return StatusReporter(
        cfg.STATUS_REPORT_HOST,
        cfg.STATUS_REPORT_PORT,
        retry=cfg.STATUS_REPORT_RETRY,
        backoff_factor=cfg.STATUS_REPORT_BACKOFF_FACTOR,
        backoff_max=cfg.STATUS_REPORT_BACKOFF_MAX,
        connect_timeout=cfg.STATUS_REPORT_CONNECT_TIMEOUT,
        deadline=cfg.STATUS_REPORT_DEADLINE,
        pending_store=_get_store(),
    )


def _get_stager(lease):
    from abupdater.boot_control import UpdateStager
    from abupdater.configs.cfg import cfg

    return UpdateStager(
        store=_get_store(),
        selector=_get_selector(),
        standby_slot_mp=cfg.STANDBY_SLOT_MNT,
        lease=lease,
        max_rollback_attempts=cfg.MAX_BOOT_ROLLBACK_ATTEMPTS,
        extract_timeout=cfg.PAYLOAD_EXTRACT_TIMEOUT,
    )


def _get_app_controller(lease, reporter):
    from abupdater.app_updater import ApplicationRollbackController
    from abupdater.configs.cfg import cfg, units_info
    from abupdater.unit_control import SystemdProcessManager

    return ApplicationRollbackController(
        process_manager=SystemdProcessManager(timeout=cfg.SYSTEMCTL_TIMEOUT),
        reporter=reporter,
        lease=lease,
        units_info=units_info,
        app_bin_dir=cfg.APP_BIN_DIR,
        standby_slot_mp=cfg.STANDBY_SLOT_MNT,
        active_check_retry=cfg.UNIT_ACTIVE_CHECK_RETRY,
        active_check_backoff_factor=cfg.UNIT_ACTIVE_CHECK_BACKOFF_FACTOR,
        active_check_backoff_max=cfg.UNIT_ACTIVE_CHECK_BACKOFF_MAX,
        active_check_deadline=cfg.UNIT_ACTIVE_CHECK_DEADLINE,
    )


def _get_action_handler():
    from abupdater.actions import ActionHandler
    from abupdater.configs.cfg import cfg

    lease, reporter = _get_lease(), _get_reporter()
    return ActionHandler(
        os_update_unit=cfg.OS_UPDATE_UNIT,
        slots=_get_slots(),
        selector=_get_selector(),
        stager=_get_stager(lease),
        app_controller=_get_app_controller(lease, reporter),
        reporter=reporter,
    )


#
# ------ subcommands handlers ------ #
#


def main_verify_boot(args: argparse.Namespace) -> None:
    from abupdater.boot_control import BootVerifier

    outcome = BootVerifier(
        store=_get_store(), selector=_get_selector(), lease=_get_lease()
    ).run()
    logger.info(f"boot verification result: {outcome.state}")

    if not _get_reporter().deliver_pending():
        logger.warning("boot verification result is not delivered, will retry later")


def main_report_pending(args: argparse.Namespace) -> None:
    if not _get_reporter().deliver_pending():
        sys.exit(errno.EAGAIN)


def main_stage(args: argparse.Namespace) -> None:
    from abupdater.boot_control import BootSelectorError

    try:
        target_slot = args.slot or _get_slots().flip(_get_selector().read_current_root())
    except (BootSelectorError, ValueError) as e:
        raise ab_errors.BootControlError(
            f"failed to detect the standby slot: {e!r}", module=__name__
        ) from e

    _get_stager(_get_lease()).stage(
        target_slot,
        args.payload,
        action_id=args.action_id,
        force=args.force,
    )


def main_app_update(args: argparse.Namespace) -> None:
    from abupdater._types import ActionState

    status = _get_app_controller(_get_lease(), _get_reporter()).update(
        args.unit, args.payload, action_id=args.action_id
    )
    if status.state == ActionState.FAILED:
        sys.exit(errno.EIO)


def main_handle_action(args: argparse.Namespace) -> None:
    from abupdater._types import ActionState, UpdateAction

    try:
        action = UpdateAction.model_validate_json(args.action)
    except ValidationError as e:
        logger.error(f"invalid update action: {e!r}")
        sys.exit(errno.EINVAL)

    status = _get_action_handler().handle(action, force=args.force)
    if status and status.state == ActionState.FAILED:
        sys.exit(errno.EIO)


#
# ------ subcommands definition ------ #
#


def command_verify_boot(
    subparsers: argparse._SubParsersAction,
) -> tuple[str, argparse.ArgumentParser]:
    cmd = "verify-boot"
    subparser: argparse.ArgumentParser = subparsers.add_parser(
        name=cmd,
        description="reconcile the slot state with the actually booted slot, run once per boot.",
    )
    return cmd, subparser


def command_report_pending(
    subparsers: argparse._SubParsersAction,
) -> tuple[str, argparse.ArgumentParser]:
    cmd = "report-pending"
    subparser: argparse.ArgumentParser = subparsers.add_parser(
        name=cmd,
        description="deliver the undelivered action status to the agent.",
    )
    return cmd, subparser


def command_stage(
    subparsers: argparse._SubParsersAction,
) -> tuple[str, argparse.ArgumentParser]:
    cmd = "stage"
    subparser: argparse.ArgumentParser = subparsers.add_parser(
        name=cmd,
        description="write the OS payload into the standby slot and reboot into it.",
    )
    subparser.add_argument(
        "payload",
        help="rootfs tar archive to be extracted into the standby slot.",
        metavar="<PAYLOAD_PATH>",
    )
    subparser.add_argument(
        "--action-id",
        help="id of the update action, the outcome is reported with it.",
        required=True,
        metavar="<ACTION_ID>",
    )
    subparser.add_argument(
        "--slot",
        help="(Optional) the target slot, default to the standby slot.",
        required=False,
        metavar="<SLOT_ID>",
    )
    subparser.add_argument(
        "--force",
        help="(Optional) stage even if the target slot reaches the rollback limit.",
        action="store_true",
    )
    return cmd, subparser


def command_app_update(
    subparsers: argparse._SubParsersAction,
) -> tuple[str, argparse.ArgumentParser]:
    cmd = "app-update"
    subparser: argparse.ArgumentParser = subparsers.add_parser(
        name=cmd,
        description="replace the binary of a unit, rollback if the unit fails to start.",
    )
    subparser.add_argument("unit", metavar="<UNIT_NAME>")
    subparser.add_argument("payload", metavar="<PAYLOAD_PATH>")
    subparser.add_argument("--action-id", required=True, metavar="<ACTION_ID>")
    return cmd, subparser


def command_handle_action(
    subparsers: argparse._SubParsersAction,
) -> tuple[str, argparse.ArgumentParser]:
    cmd = "handle-action"
    subparser: argparse.ArgumentParser = subparsers.add_parser(
        name=cmd,
        description="execute an update action from the agent.",
    )
    subparser.add_argument(
        "action",
        help='update action in JSON: {"action_id", "target_unit", "payload_path"}.',
        metavar="<ACTION_JSON>",
    )
    subparser.add_argument("--force", action="store_true")
    return cmd, subparser


def register_handler(
    _cmd: str, subparser: argparse.ArgumentParser, *, handler: Callable
):
    subparser.set_defaults(handler=handler)


def get_handler(args: argparse.Namespace) -> Callable[[argparse.Namespace], None]:
    try:
        return args.handler
    except AttributeError:
        print("ERR: subcommand is not specified, check -h for more details")
        sys.exit(errno.EINVAL)


def main() -> None:  # pragma: no cover
    from abupdater._logging import configure_logging

    # configure logging before any code being executed
    configure_logging()

    main_parser = argparse.ArgumentParser(
        prog="abupdater",
        description="A/B slot OS update, boot verification and application rollback.",
    )
    main_parser.add_argument("--version", action="version", version=__version__)
    subparsers = main_parser.add_subparsers(title="commands")
    register_handler(*command_verify_boot(subparsers), handler=main_verify_boot)
    register_handler(*command_report_pending(subparsers), handler=main_report_pending)
    register_handler(*command_stage(subparsers), handler=main_stage)
    register_handler(*command_app_update(subparsers), handler=main_app_update)
    register_handler(*command_handle_action(subparsers), handler=main_handle_action)

    args = main_parser.parse_args()
    logger.info(f"abupdater {__version__} started with {sys.argv=}, pid: {os.getpid()}")

    try:
        get_handler(args)(args)
    except ab_errors.ABUpdateError as e:
        logger.error(e.get_error_report(f"{sys.argv[1:]} failed"))
        sys.exit(errno.EIO)
