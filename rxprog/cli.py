"""
rxprog command line interface.

Programs Renesas microcontrollers through the Boot Mode protocol. Fields
missing from the connection string are queried from the target and listed,
so a connection string can be built up one field at a time:

    rxprog                                    # list serial ports
    rxprog "p=/dev/ttyUSB0"                   # list devices
    rxprog "p=/dev/ttyUSB0;d=7805"            # list clock modes
    rxprog "p=/dev/ttyUSB0;d=7805;cm=0"       # list ratios and frequencies
    rxprog "p=/dev/ttyUSB0;d=7805;cm=0;if=1200;mr=x4,x2;br=115200" image.hex
"""

import argparse
import json
import logging
import sys
from dataclasses import replace
from typing import List, Optional, Sequence

from tqdm import tqdm

from . import __version__
from .capabilities import CapabilityQuery
from .devices import DEFAULT_FAMILY, FAMILIES, resolve_family
from .exceptions import BootModeError, ConfigurationError
from .image import IMAGE_TYPES, clip_to_areas, load_image
from .negotiator import Negotiator
from .params import LinkConfig, parse_connection_string
from .programmer import Programmer
from .progress import EventKind, ProgressEvent
from .session import Session
from .transport import SerialTransport, list_ports

logger = logging.getLogger(__name__)

COLUMN_SEPARATOR = "    "

PHASE_LABELS = {
    "ERASING": "Erasing...",
    "PROGRAMMING": "Programming...",
    "VERIFYING": "Verifying...",
}


def print_table(headings: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
    """Print rows as left-aligned columns under underlined headings."""
    widths = [len(heading) for heading in headings]
    for row in rows:
        widths = [max(width, len(value)) for width, value in zip(widths, row)]

    def line(values):
        return COLUMN_SEPARATOR.join(value.ljust(width) for value, width in zip(values, widths))

    print(line(headings).rstrip())
    print("=" * (sum(widths) + len(COLUMN_SEPARATOR) * (len(widths) - 1)))
    for row in rows:
        print(line(row).rstrip())


class ProgressBar:
    """Renders ProgressEvents with tqdm, one bar per phase."""

    def __init__(self):
        self._bar: Optional[tqdm] = None

    def __call__(self, event: ProgressEvent) -> None:
        if event.kind == EventKind.PHASE:
            self.close()
            label = PHASE_LABELS.get(event.phase)
            if label:
                print(label)
            return

        if self._bar is None:
            self._bar = tqdm(total=event.total, unit="block", desc=event.phase.lower())
        self._bar.update(1)
        if event.done >= event.total:
            self.close()

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


def confirm_reset(prompt: str) -> None:
    """Block until the operator has reset the target."""
    input(f"{prompt} (press Enter) ")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rxprog",
        description="Programming utility for Renesas microcontrollers supporting the Boot Mode protocol",
        epilog=(
            "The connection string is a semicolon separated list of key=value pairs: "
            "p (port), d (device code), cm (clock mode), if (input frequency, 10 kHz units), "
            "mr (multiplication ratios, e.g. x4,/2) and br (bit rate). Omitting a field "
            "queries the target for the values it accepts. Quote the string in the shell."
        ),
    )
    parser.add_argument("connection_string", nargs="?", default="",
                        help="e.g. \"p=COM3;d=7805;cm=0;if=1200;mr=x4,x2;br=115200\"")
    parser.add_argument("image", nargs="?", help="Firmware image to program")
    parser.add_argument("-T", "--image-type", choices=IMAGE_TYPES,
                        help="Image type (default: guessed from the extension)")
    parser.add_argument("--base-address", type=lambda s: int(s, 0), default=0,
                        help="Load address of a binary image (default: 0)")
    parser.add_argument("-c", "--show-checksums", action="store_true",
                        help="Print the user boot area and user area checksums after verifying")
    parser.add_argument("--family", choices=sorted(FAMILIES), default=DEFAULT_FAMILY,
                        help=f"Device family dialect (default: {DEFAULT_FAMILY})")
    parser.add_argument("--auto-reset", action="store_true",
                        help="Adapter resets the target itself; do not prompt for a manual reset")
    parser.add_argument("--link-config", metavar="JSON",
                        help="Link tolerances, e.g. '{\"probe_attempts\": 50}'")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase log output (-v info, -vv debug)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def load_link_config(args: argparse.Namespace) -> LinkConfig:
    config = {}
    if args.link_config:
        try:
            config = json.loads(args.link_config)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid --link-config: {e}") from e
        if not isinstance(config, dict):
            raise ConfigurationError("--link-config must be a JSON object")
    link = LinkConfig.from_dict(config)
    if args.auto_reset:
        link = replace(link, auto_reset=True)
    return link


def run(args: argparse.Namespace) -> int:
    link = load_link_config(args)
    params = parse_connection_string(args.connection_string, family=args.family)

    if params.port is None:
        print("No port specified in connection string. Listing available serial ports:")
        print_table(["Port name"], [[port] for port in list_ports()])
        print()
        print("Hint: select a port with p=<port name>")
        return 0

    records = None
    if args.image and params.is_complete:
        records = load_image(args.image, args.image_type, args.base_address)

    print(f"Connecting to target on {params.port}")
    with Session(SerialTransport(params.port), link.response_timeout) as session:
        negotiator = Negotiator(session, link, confirm=confirm_reset)
        query = CapabilityQuery(negotiator)
        negotiator.connect()
        print("Initial connection succeeded")

        if params.device is None:
            print()
            print("No device specified in connection string. Querying target for supported devices:")
            print_table(["Device code", "Series name"],
                        [[d.device_code, d.series_name] for d in query.supported_devices()])
            print()
            print("Hint: select a device with d=<device code>")
            return 0
        negotiator.select_device(params.device)

        if params.clock_mode is None:
            print()
            print("No clock mode specified in connection string. Querying target for supported clock modes:")
            print_table(["Clock mode"], [[str(mode)] for mode in query.clock_modes()])
            print()
            print("Hint: select a clock mode with cm=<clock mode>")
            return 0
        negotiator.select_clock_mode(params.clock_mode)

        if None in (params.input_frequency, params.multiplication_ratios, params.bit_rate):
            print()
            print("No input frequency, multiplication ratio and/or bit rate specified in "
                  "connection string. Querying target for supported multiplication ratios "
                  "and operating frequency ranges:")
            ratios = query.multiplication_ratios()
            print_table(["Clock", "Multiplication ratios"],
                        [[str(clock), ", ".join(str(r) for r in values)]
                         for clock, values in ratios.items()])
            print()
            ranges = query.frequency_ranges()
            print_table(["Clock", "Minimum frequency", "Maximum frequency"],
                        [[str(clock), str(r.minimum), str(r.maximum)]
                         for clock, r in ranges.items()])
            print()
            print("Hint: select an input frequency, multiplication ratio and bit rate with "
                  "if=<input frequency>;mr=<ratio 1>,<ratio 2>,...;br=<bit rate>")
            return 0

        ranges = query.frequency_ranges()
        if records is None:
            params.validate(resolve_family(params.family), ranges)
            print()
            print("Hint: specify an image to program the device")
            print("Nothing to do")
            return 0

        progress = ProgressBar()
        programmer = Programmer(negotiator, params, observer=progress, frequency_ranges=ranges)
        try:
            programmer.enter_ready()
            print("Transitioned to programming/erasure state successfully")
            records = clip_to_areas(records, programmer.user_areas)
            programmer.erase()
            programmer.program(records)
            programmer.verify()
        finally:
            progress.close()
        print("Verification complete.")

        if args.show_checksums:
            print()
            print(f"User boot area checksum: 0x{programmer.client.user_boot_area_checksum():08X}")
            print(f"User area checksum: 0x{programmer.client.user_area_checksum():08X}")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        return run(args)
    except KeyboardInterrupt:
        print("Error: Cancelled", file=sys.stderr)
        return 130
    except BootModeError as e:
        logger.debug("Failure details", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
