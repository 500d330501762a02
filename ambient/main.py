"""
Command-line entry point for the ambient trigger.

This module provides the front end that replaces the settings screen. It
handles:
- Environment variable loading (.env file)
- Logging configuration (interactive vs. headless)
- Sound library edits (files, groups, import/export)
- Running the scheduler until interrupted

Example:
    ```bash
    # Run on the "All" group, printing status lines to the console
    python -m ambient run --group All --interactive

    # Headless (logs to ~/ambient-trigger/logs/ambient.log)
    python -m ambient run --group Duelists --interval 20 --mode exponential --multiplier 2

    # Library edits
    python -m ambient files add omen
    python -m ambient groups create Controllers
    python -m ambient groups set Controllers omen.mp3 viper.mp3
    ```
"""

import argparse
import logging
import logging.handlers
import os
import select
import signal
import sys
import threading
import time
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

# Load environment variables before constants.py reads them
load_dotenv(find_dotenv(usecwd=True))

from .app import AmbientPlayer, load_library
from .config import ScheduleConfig, SettingsHolder
from .constants import CONFIG_PATH, EXPORT_FILENAME, SOUND_DIR
from .errors import AmbientError
from .file_manager import FileManager
from .library import SoundLibrary
from .state import ConfigStore
from .status import StatusKind, StatusUpdate

logger = logging.getLogger(__name__)


# ANSI color codes for prettier output
class Colors:
    """ANSI color codes for terminal output."""
    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'
    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    CYAN = '\033[36m'
    WHITE = '\033[37m'


class ColoredFormatter(logging.Formatter):
    """
    Logging formatter with colors for console output.

    In interactive mode it prints the message only (no timestamps, no module
    names) and highlights "Playing:" lines; otherwise it behaves like the
    standard formatter.
    """

    COLORS = {
        'DEBUG': Colors.DIM + Colors.WHITE,
        'INFO': Colors.CYAN,
        'WARNING': Colors.YELLOW,
        'ERROR': Colors.RED,
        'CRITICAL': Colors.BOLD + Colors.RED,
    }

    def __init__(self, *args, interactive: bool = False, **kwargs):
        if 'fmt' not in kwargs:
            kwargs['fmt'] = '%(message)s'
        super().__init__(*args, **kwargs)
        self.interactive = interactive

    def format(self, record):
        if not self.interactive:
            return super().format(record)

        msg = record.getMessage()
        levelname = record.levelname
        # Raw terminal mode needs explicit carriage returns
        if levelname == 'INFO' and msg.startswith('Playing:'):
            clip = msg.replace('Playing: ', '')
            return f"{Colors.GREEN}▶ {Colors.RESET}{Colors.BOLD}{clip}{Colors.RESET}\r"
        if levelname == 'WARNING':
            return f"{Colors.YELLOW}⚠ {msg}{Colors.RESET}\r"
        if levelname in ('ERROR', 'CRITICAL'):
            return f"{Colors.RED}✗ {msg}{Colors.RESET}\r"
        if levelname == 'INFO':
            return f"{msg}\r"
        return f"{self.COLORS.get(levelname, '')}{levelname}{Colors.RESET} {msg}\r"


def setup_logging(interactive: bool = False, log_file: Path = None, verbose: bool = False) -> None:
    """
    Setup logging for the application.

    Args:
        interactive: Use the colored, message-only console format
        log_file: Optional path to a rotating log file (10MB, 5 backups)
        verbose: Log at DEBUG instead of INFO
    """
    handlers = []

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        handlers.append(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    if interactive:
        console_handler.setFormatter(ColoredFormatter(fmt='%(message)s', interactive=True))
    else:
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
    handlers.append(console_handler)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        handlers=handlers,
        force=True,
    )


# Set by the keyboard thread or the signal handlers
exit_requested = threading.Event()


def read_keyboard() -> None:
    """
    Watch the keyboard in interactive mode (runs on a daemon thread).

    ESC or Ctrl+C requests exit. Uses raw terminal mode (Unix only) and
    restores the terminal settings on exit.
    """
    import termios
    import tty

    fd = sys.stdin.fileno()
    old_settings = termios.tcgetattr(fd)

    try:
        tty.setraw(fd)
        while not exit_requested.is_set():
            if select.select([sys.stdin], [], [], 0.1)[0]:
                char = sys.stdin.read(1)
                if char == '\x1b':  # ESC key
                    if select.select([sys.stdin], [], [], 0.1)[0]:
                        sys.stdin.read(1)  # Rest of an escape sequence (arrow keys etc.)
                    else:
                        print(f"\r\n{Colors.YELLOW}[ESC] Stopping...{Colors.RESET}\r", flush=True)
                        exit_requested.set()
                elif char == '\x03':  # Ctrl+C
                    print(f"\r\n{Colors.YELLOW}[Ctrl+C] Stopping...{Colors.RESET}\r", flush=True)
                    exit_requested.set()
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)


def build_settings(args) -> SettingsHolder:
    """Settings from the environment defaults, overridden by command-line flags."""
    overrides = {
        'interval_seconds': args.interval,
        'initial_probability': args.initial,
        'mode': args.mode,
        'linear_step': args.step,
        'exponential_multiplier': args.multiplier,
        'anti_repeat': args.anti_repeat,
        'volume': args.volume,
    }
    config = ScheduleConfig.defaults().with_changes(**{k: v for k, v in overrides.items() if v is not None})
    return SettingsHolder(config)


def print_status(update: StatusUpdate) -> None:
    # Status lines are the user-facing part; logging carries the details
    if update.kind in (StatusKind.PLAYBACK_FAILED, StatusKind.GROUP_EMPTY):
        print(f"{Colors.RED}{update.message}{Colors.RESET}\r", flush=True)
    elif update.kind is StatusKind.MISSED:
        print(f"{Colors.DIM}{update.message}{Colors.RESET}\r", flush=True)
    else:
        print(f"{Colors.CYAN}{update.message}{Colors.RESET}\r", flush=True)


# ------------ subcommands ------------
def cmd_run(args) -> int:
    exit_requested.clear()
    project_dir = Path(args.config).expanduser().parent
    log_file = None if args.interactive else project_dir / 'logs' / 'ambient.log'
    setup_logging(interactive=args.interactive, log_file=log_file, verbose=args.verbose)

    settings = build_settings(args)
    try:
        player = AmbientPlayer(
            ConfigStore(str(Path(args.config).expanduser())),
            settings=settings,
            sound_dir=args.sound_dir,
            status_listener=print_status if args.interactive else None,
        )
    except Exception as e:
        logger.error(f"Failed to initialize AmbientPlayer: {e}", exc_info=True)
        return 1

    if args.interactive:
        print(f"\n{Colors.BOLD}{Colors.CYAN}{'=' * 60}{Colors.RESET}")
        print(f"{Colors.BOLD}{Colors.CYAN}  Ambient Trigger - Interactive Mode{Colors.RESET}")
        print(f"{Colors.BOLD}{Colors.CYAN}{'=' * 60}{Colors.RESET}")
        print(f"{Colors.DIM}Group: {args.group}{Colors.RESET}")
        print(f"{Colors.DIM}Sound folder: {args.sound_dir}{Colors.RESET}")
        print(f"{Colors.DIM}Settings: {settings.snapshot().describe()}{Colors.RESET}")
        print(f"\n{Colors.BOLD}Controls:{Colors.RESET}")
        print(f"  {Colors.GREEN}[ESC]{Colors.RESET}    - Stop")
        print(f"  {Colors.GREEN}[Ctrl+C]{Colors.RESET} - Stop")
        print(f"{Colors.BOLD}{Colors.CYAN}{'=' * 60}{Colors.RESET}\n")
    else:
        logger.info("=" * 60)
        logger.info("Ambient Trigger - Starting up")
        if log_file:
            logger.info(f"Log file: {log_file}")
        logger.info(f"Group: {args.group}")
        logger.info(f"Sound folder: {args.sound_dir}")
        logger.info("=" * 60)

    def request_exit(_signo, _stack_frame):
        logger.info("Received termination signal, shutting down gracefully...")
        exit_requested.set()

    signal.signal(signal.SIGTERM, request_exit)
    if not args.interactive:
        # Also handle SIGHUP for systemd
        signal.signal(signal.SIGHUP, request_exit)

    player.start(args.group)

    if args.interactive and sys.stdin.isatty():
        threading.Thread(target=read_keyboard, name="KeyboardReader", daemon=True).start()

    try:
        while not exit_requested.is_set():
            if not player.scheduler.is_running:
                # The group went empty while running
                logger.warning("Scheduler stopped on its own; exiting")
                break
            time.sleep(0.2)
    except KeyboardInterrupt:
        logger.info("Interrupted by user, shutting down...")
    finally:
        player.stop()
        exit_requested.set()
    return 0


def cmd_files(args) -> int:
    store = ConfigStore(str(Path(args.config).expanduser()))
    library = load_library(store)

    if args.files_command == 'list':
        present = set(FileManager().get_sound_files(args.sound_dir))
        for name in library.files:
            marker = ' ' if name in present else '!'
            print(f"{marker} {name}")
        return 0

    if args.files_command == 'add':
        for raw in args.names:
            name = library.register_file(raw)
            print(f"Added '{name}'. Put the file in {args.sound_dir}.")
    elif args.files_command == 'remove':
        for name in args.names:
            library.remove_file(name)
            print(f"Removed '{name}'")
    elif args.files_command == 'scan':
        registered = set(library.files)
        added = [library.register_file(f) for f in FileManager().get_sound_files(args.sound_dir) if f not in registered]
        print(f"Registered {len(added)} new file(s) from {args.sound_dir}")
    store.save(library.to_document())
    return 0


def cmd_groups(args) -> int:
    store = ConfigStore(str(Path(args.config).expanduser()))
    library = load_library(store)

    if args.groups_command == 'list':
        for group in library.groups:
            print(f"{group.name} ({len(group)} files): {', '.join(group.members)}")
        return 0

    if args.groups_command == 'create':
        library.create_group(args.name)
        print(f"Created group '{args.name.strip()}'")
    elif args.groups_command == 'delete':
        library.delete_group(args.name)
        print(f"Deleted group '{args.name}'")
    elif args.groups_command == 'set':
        group = library.set_group_files(args.name, args.files)
        print(f"Group '{group.name}' now has {len(group)} file(s)")
    store.save(library.to_document())
    return 0


def cmd_export(args) -> int:
    library = load_library(ConfigStore(str(Path(args.config).expanduser())))
    path = library.export_json(args.path)
    print(f"Exported to {path}")
    return 0


def cmd_import(args) -> int:
    store = ConfigStore(str(Path(args.config).expanduser()))
    library = SoundLibrary.import_json(args.path)
    store.save(library.to_document())
    print(f"Imported {len(library.files)} files and {len(library.groups)} groups")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='ambient-trigger',
        description='Ambient Trigger - plays a random sound now and then, with rising odds'
    )
    parser.add_argument('--config', default=CONFIG_PATH, help=f'Library document (default: {CONFIG_PATH})')
    parser.add_argument('--sound-dir', default=SOUND_DIR, help=f'Sound folder (default: {SOUND_DIR})')
    sub = parser.add_subparsers(dest='command', required=True)

    run = sub.add_parser('run', help='Run the trigger on a group until stopped')
    run.add_argument('--group', '-g', required=True, help='Group to pick sounds from')
    run.add_argument('--interval', type=float, help='Seconds between decisions')
    run.add_argument('--initial', type=float, help='Starting probability in percent (0-100)')
    run.add_argument('--mode', choices=['linear', 'exponential'], help='How probability grows after a miss')
    run.add_argument('--step', type=float, help='Percentage points added per miss (linear mode)')
    run.add_argument('--multiplier', type=float, help='Factor applied per miss (exponential mode)')
    run.add_argument('--anti-repeat', dest='anti_repeat', action='store_true', default=None,
                     help='Make an immediate repeat of the last sound less likely')
    run.add_argument('--no-anti-repeat', dest='anti_repeat', action='store_false')
    run.add_argument('--volume', type=float, help='Playback volume (0-1)')
    run.add_argument('--interactive', '-i', action='store_true', help='Colored console output, ESC to stop')
    run.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    run.set_defaults(handler=cmd_run)

    files = sub.add_parser('files', help='Manage registered sound files')
    files_sub = files.add_subparsers(dest='files_command', required=True)
    files_sub.add_parser('list', help='List registered files (! = missing on disk)')
    add = files_sub.add_parser('add', help='Register files (".mp3" is added when missing)')
    add.add_argument('names', nargs='+')
    remove = files_sub.add_parser('remove', help='Unregister files (also removes them from groups)')
    remove.add_argument('names', nargs='+')
    files_sub.add_parser('scan', help='Register every sound file found in the sound folder')
    files.set_defaults(handler=cmd_files)

    groups = sub.add_parser('groups', help='Manage groups')
    groups_sub = groups.add_subparsers(dest='groups_command', required=True)
    groups_sub.add_parser('list', help='List groups')
    create = groups_sub.add_parser('create', help='Create an empty group')
    create.add_argument('name')
    delete = groups_sub.add_parser('delete', help='Delete a group')
    delete.add_argument('name')
    set_files = groups_sub.add_parser('set', help="Replace a group's files")
    set_files.add_argument('name')
    set_files.add_argument('files', nargs='*')
    groups.set_defaults(handler=cmd_groups)

    export = sub.add_parser('export', help='Export the library document')
    export.add_argument('path', nargs='?', default=EXPORT_FILENAME)
    export.set_defaults(handler=cmd_export)

    imp = sub.add_parser('import', help='Import a library document (replaces the current one)')
    imp.add_argument('path')
    imp.set_defaults(handler=cmd_import)

    return parser


def main(argv=None) -> int:
    """Parse arguments and dispatch to a subcommand."""
    args = build_parser().parse_args(argv)
    args.sound_dir = os.path.expanduser(args.sound_dir)
    if args.command != 'run':
        logging.basicConfig(level=logging.WARNING, format='%(levelname)s: %(message)s')

    try:
        return args.handler(args)
    except AmbientError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
