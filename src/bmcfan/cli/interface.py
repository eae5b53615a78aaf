"""
Command Line Interface Module

This module provides the command-line interface for managing machines,
running single apply cycles and running the scheduler daemon.
"""

import argparse
import functools
import logging
import math
import os
import signal
import sys
from typing import Any, Dict, List, Optional

from ..config import DEFAULT_CONFIG_PATH, load_config, write_default_config
from ..control import ApplyManager, MachineScheduler
from ..ipmi import IPMICommander
from ..machine import MachineRepository
from ..machine.service import MachineService

logger = logging.getLogger(__name__)


class CLI:
    """Command-line interface handler"""

    def __init__(self):
        """Initialize CLI handler"""
        self.parser = self._create_parser()
        self.config: Dict[str, Any] = {}
        self.repository: Optional[MachineRepository] = None
        self.applier: Optional[ApplyManager] = None
        self.scheduler: Optional[MachineScheduler] = None
        self.service: Optional[MachineService] = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create command-line argument parser

        Returns:
            Configured argument parser
        """
        parser = argparse.ArgumentParser(
            description="bmcfan - scheduled fan control for remote servers over IPMI"
        )

        parser.add_argument(
            "-c", "--config",
            help="Path to configuration file",
            default=DEFAULT_CONFIG_PATH
        )

        parser.add_argument(
            "--debug",
            action="store_true",
            help="Enable debug logging"
        )

        actions = parser.add_mutually_exclusive_group()
        actions.add_argument(
            "--list",
            action="store_true",
            help="List configured machines"
        )
        actions.add_argument(
            "--apply",
            metavar="MACHINE_ID",
            help="Run one apply cycle for a machine"
        )
        actions.add_argument(
            "--status",
            metavar="MACHINE_ID",
            help="Show temperatures, fans, power and chassis status of a machine"
        )
        actions.add_argument(
            "--add",
            metavar="NAME",
            help="Add a machine (requires --host, --user, --password, --cron)"
        )
        actions.add_argument(
            "--enable",
            metavar="MACHINE_ID",
            help="Enable scheduled control of a machine"
        )
        actions.add_argument(
            "--disable",
            metavar="MACHINE_ID",
            help="Disable scheduled control of a machine"
        )

        parser.add_argument("--host", help="BMC address for --add")
        parser.add_argument("--user", help="BMC user for --add")
        parser.add_argument("--password", help="BMC password for --add")
        parser.add_argument(
            "--cron",
            default="*/30 * * * * *",
            help="Schedule for --add (5 fields, or 6 with leading seconds)"
        )

        return parser

    def _setup_config(self, config_path: str) -> str:
        """Setup configuration file

        Args:
            config_path: Path to configuration file

        Returns:
            Path to active configuration file
        """
        if not os.path.exists(config_path):
            write_default_config(config_path)
        return config_path

    def _setup_logging(self, debug: bool) -> None:
        level = "DEBUG" if debug else str(self.config["logging"]["level"]).upper()
        logging.getLogger("bmcfan").setLevel(level)

    def _build(self) -> None:
        """Wire the store, apply manager, scheduler and service from config"""
        self.repository = MachineRepository(self.config["store"]["path"])
        self.repository.load()

        control = self.config["control"]
        self.applier = ApplyManager(
            self.repository,
            commander_factory=functools.partial(IPMICommander.from_config, settings=self.config["ipmi"]),
            baseline_speed=control["baseline_speed"],
            temperature_sensor=control["temperature_sensor"],
        )
        self.scheduler = MachineScheduler(self.applier, timezone=self.config["scheduler"]["timezone"])
        self.service = MachineService(self.repository)

    def _list_machines(self) -> None:
        machines = self.repository.find_all()
        if not machines:
            print("No machines configured")
            return

        print(f"{'ID':<38}{'Name':<20}{'Enabled':<9}{'Cron':<18}Control")
        for machine in machines:
            preset = machine.find_preset(machine.active_preset_id)
            control = f"preset '{preset.name}'" if preset else f"static {machine.fan_speed}%"
            print(f"{machine.id:<38}{machine.name:<20}{str(machine.enabled):<9}{machine.cron:<18}{control}")

    def _show_status(self, machine_id: str) -> None:
        machine = self.repository.get(machine_id)
        commander = IPMICommander.from_config(machine.ipmi_config, self.config["ipmi"])

        print(f"\n{machine.name} ({machine.ipmi_config.host})")
        print("\nTemperatures:")
        for reading in commander.get_temperatures():
            value = f"{reading.degrees:.1f}°{reading.units}" if math.isfinite(reading.degrees) else "no reading"
            print(f"  {reading.sensor:<16} {reading.identifier:<6} {value:>10}  ({reading.status})")

        print("\nFans:")
        for fan in commander.get_fan_speeds():
            value = f"{fan.rpm:.0f} {fan.units}" if math.isfinite(fan.rpm) else "no reading"
            print(f"  {fan.sensor:<16} {fan.identifier:<6} {value:>10}  ({fan.status})")

        power = commander.get_power_consumption()
        print("\nPower:")
        print(f"  Current {power.current_watts} W, min {power.minimum_watts} W, "
              f"max {power.maximum_watts} W, avg {power.average_watts} W")

        chassis = commander.get_chassis_status()
        print("\nChassis:")
        print(f"  Power on:           {chassis.power_on}")
        print(f"  Power overload:     {chassis.power_overload}")
        print(f"  Power fault:        {chassis.power_fault}")
        print(f"  Last power event:   {chassis.last_power_event}")
        print(f"  Chassis intrusion:  {chassis.chassis_intrusion}")

    def _run_daemon(self) -> None:
        """Run the scheduler until interrupted"""
        self.service.scheduler = self.scheduler
        self.scheduler.start(self.repository.find_all())

        # Machines edited by other bmcfan invocations
        interval = self.config["store"]["reload_interval"]
        if interval:
            self.scheduler.watch_store(self.repository, interval)

        def signal_handler(signum, frame):
            raise KeyboardInterrupt
        signal.signal(signal.SIGTERM, signal_handler)

        def reload_handler(signum, frame):
            logger.info("Received SIGHUP, reloading machine store")
            try:
                self.scheduler.reload(self.repository)
            except Exception as e:
                logger.error(f"Failed to reload machine store: {e}")
        signal.signal(signal.SIGHUP, reload_handler)

        print("Scheduler started. Press Ctrl+C to exit.")
        try:
            signal.pause()
        finally:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def run(self, argv: Optional[List[str]] = None) -> None:
        """Run the CLI interface"""
        args = self.parser.parse_args(argv)

        if args.add and not (args.host and args.user and args.password):
            self.parser.error("--add requires --host, --user and --password")

        try:
            config_path = self._setup_config(args.config)
            self.config = load_config(config_path)
            self._setup_logging(args.debug)
            self._build()

            if args.list:
                self._list_machines()

            elif args.apply:
                speed = self.applier.apply(args.apply)
                if speed is None:
                    print("Machine is disabled or busy, nothing applied")
                else:
                    print(f"Fan speed set to {speed}%")

            elif args.status:
                self._show_status(args.status)

            elif args.add:
                machine = self.service.create(args.add, args.host, args.user, args.password, args.cron)
                print(f"Added machine {machine.name} with ID {machine.id} (disabled)")

            elif args.enable or args.disable:
                machine = self.service.set_enabled(args.enable or args.disable, bool(args.enable))
                print(f"Machine {machine.name} {'enabled' if machine.enabled else 'disabled'}")

            else:
                self._run_daemon()

        except KeyboardInterrupt:
            print("\nExiting...")

        except Exception as e:
            logger.error(f"Error: {e}")
            sys.exit(1)


def main() -> None:
    """Main entry point"""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    cli = CLI()
    cli.run()


if __name__ == "__main__":
    main()
