"""Command-line entry points for the retail records tool.

The module wires argparse sub-commands onto the tabular store and hosts the
interactive menu. Input is parsed with :mod:`retail_records.validation`
before anything reaches the store, and every outcome is written to the
action log.
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass, replace
from datetime import date
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence, TextIO

from . import core_logic, data_manager, log, setup_excel
from .action_log import ActionLog
from .constants import TableId
from .errors import (
    ArgumentError,
    MalformedRowError,
    NotFoundError,
    PersistenceFailure,
    RecordStoreError,
    ResourceUnavailableError,
)
from .records import TABLE_SCHEMAS, TableSchema, encode_bool
from .validation import (
    DISCOUNT_RANGE,
    PACKAGE_COUNT_RANGE,
    ParseResult,
    parse_date,
    parse_int_in_range,
    parse_non_empty,
    parse_positive_decimal,
    parse_yes_no,
)


InputFunc = Callable[[str], str]
FieldParser = Callable[[Optional[str]], ParseResult[Any]]


@dataclass(frozen=True)
class CliContext:
    """Everything an executor needs: settings, action log, store and output."""

    settings: data_manager.ConfigSettings
    action_log: ActionLog
    store: Optional[core_logic.TabularStore]
    out: TextIO
    input_func: InputFunc = input


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[CliContext, argparse.Namespace], int]
    needs_store: bool = True


FIELD_PROMPTS: Mapping[TableId, tuple[tuple[str, str, FieldParser], ...]] = {
    TableId.PRODUCT_MOVEMENTS: (
        ("operation_id", "Operation id: ", parse_non_empty),
        ("date", "Date (DD.MM.YYYY): ", parse_date),
        ("store_id", "Store id: ", parse_non_empty),
        ("article_id", "Article id: ", parse_non_empty),
        ("operation_type", "Operation type: ", parse_non_empty),
        ("package_count", "Package count: ", partial(parse_int_in_range, minimum=PACKAGE_COUNT_RANGE[0], maximum=PACKAGE_COUNT_RANGE[1])),
        ("has_client_card", "Client card (yes/no): ", parse_yes_no),
    ),
    TableId.PRODUCTS: (
        ("article_id", "Article id: ", parse_non_empty),
        ("category_id", "Category id: ", parse_non_empty),
        ("product_name", "Product name: ", parse_non_empty),
        ("purchase_price", "Purchase price: ", parse_positive_decimal),
        ("sale_price", "Sale price: ", parse_positive_decimal),
        ("discount_percent", "Discount (%): ", partial(parse_int_in_range, minimum=DISCOUNT_RANGE[0], maximum=DISCOUNT_RANGE[1])),
    ),
    TableId.CATEGORIES: (
        ("category_id", "Category id: ", parse_non_empty),
        ("category_name", "Category name: ", parse_non_empty),
        ("age_limit", "Age limit: ", parse_non_empty),
    ),
    TableId.STORES: (
        ("store_id", "Store id: ", parse_non_empty),
        ("district", "District: ", parse_non_empty),
        ("address", "Address: ", parse_non_empty),
    ),
}


def format_cell(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return encode_bool(value)
    if isinstance(value, date):
        return value.strftime("%d.%m.%Y")
    return str(value)


def format_record(schema: TableSchema, record: Any) -> str:
    """Render one record as a tab-separated line in column order."""

    return "\t".join(format_cell(value) for value in schema.serialize(record))


class MenuSession:
    """Interactive console loop over an open store.

    Menu choices and field values are read through ``input_func`` and parsed
    with the result-typed validators; invalid input is reported and asked
    again. Record store errors are printed, logged, and the loop continues.
    """

    def __init__(
        self,
        store: core_logic.TabularStore,
        action_log: ActionLog,
        *,
        input_func: InputFunc = input,
        out: TextIO = sys.stdout,
    ):
        self.store = store
        self.action_log = action_log
        self._input = input_func
        self._out = out

    def _say(self, message: str = "") -> None:
        print(message, file=self._out)

    def ask(self, prompt: str, parser: FieldParser) -> Any:
        """Prompt until ``parser`` accepts the answer."""

        while True:
            result = parser(self._input(prompt))
            if result.ok:
                return result.value
            self._say(f"Error: {result.error}")

    def ask_choice(self, prompt: str, maximum: int) -> int:
        return self.ask(prompt, partial(parse_int_in_range, minimum=1, maximum=maximum))

    def run(self) -> None:
        """Show the main menu until the user exits or input ends."""

        try:
            while self.main_menu():
                pass
        except (EOFError, KeyboardInterrupt):
            self._say()
        self.action_log.record("Session finished")

    def main_menu(self) -> bool:
        self._say("\n=== MAIN MENU ===")
        for table_id, schema in TABLE_SCHEMAS.items():
            self._say(f"{int(table_id)}. {schema.title}")
        self._say("5. Run query")
        self._say("6. Exit")

        choice = self.ask_choice("Select a menu item: ", 6)
        if choice == 6:
            return False
        try:
            if choice == 5:
                self.run_query()
            else:
                self.table_menu(TableId(choice))
        except RecordStoreError as exc:
            self._report(exc, "main menu")
        return True

    def table_menu(self, table_id: TableId) -> None:
        schema = self.store.get_table(table_id)
        actions: Dict[int, Callable[[TableSchema], None]] = {
            1: self.view_table,
            2: self.add_record,
            3: self.edit_record,
            4: self.delete_record,
        }
        while True:
            self._say(f"\n=== {schema.title.upper()} ===")
            self._say("1. View records")
            self._say("2. Add record")
            self._say("3. Edit record")
            self._say("4. Delete record")
            self._say("5. Back to main menu")

            choice = self.ask_choice("Select an action: ", 5)
            if choice == 5:
                return
            try:
                actions[choice](schema)
            except RecordStoreError as exc:
                self._report(exc, f"{schema.title} menu")

    def _report(self, exc: Exception, where: str) -> None:
        self._say(f"Error: {exc}")
        self.action_log.record(f"Error in {where}: {exc}")

    def view_table(self, schema: TableSchema) -> None:
        self._say("\t".join(schema.columns))
        for record in self.store.list_rows(schema):
            self._say(format_record(schema, record))
        self.action_log.record(f"Viewed table {int(schema.table_id)}")

    def read_record(self, schema: TableSchema) -> Any:
        values = {
            field: self.ask(prompt, parser)
            for field, prompt, parser in FIELD_PROMPTS[schema.table_id]
        }
        return schema.record_type(**values)

    def add_record(self, schema: TableSchema) -> None:
        record = self.read_record(schema)
        key = getattr(record, schema.key_field)
        self.store.append_row(schema, record)
        self._say(f"Added {key}.")
        self.action_log.record(f"Added {schema.title} record: {key}")

    def edit_record(self, schema: TableSchema) -> None:
        key = self.ask("Enter the id to edit: ", parse_non_empty)
        current = self.store.get_row(schema, key)

        prompts = {field: (prompt, parser) for field, prompt, parser in FIELD_PROMPTS[schema.table_id]}
        update: Dict[str, Any] = {}
        for field in schema.fields:
            if field not in schema.editable_fields:
                continue
            prompt, parser = prompts[field]
            label = prompt.rstrip(": ")
            current_text = format_cell(getattr(current, field))
            while True:
                raw = self._input(f"{label} (current: {current_text}, blank keeps): ")
                if not (raw or "").strip():
                    break
                result = parser(raw)
                if result.ok:
                    update[field] = result.value
                    break
                self._say(f"Error: {result.error}")

        if not update:
            self._say("Nothing changed.")
            return
        self.store.update_row(schema, key, update)
        self._say(f"Updated {key}.")
        self.action_log.record(f"Updated record {key} in table {int(schema.table_id)}")

    def delete_record(self, schema: TableSchema) -> None:
        key = self.ask("Enter the id to delete: ", parse_non_empty)
        self.store.delete_row(schema, key)
        self._say(f"Deleted {key}.")
        self.action_log.record(f"Deleted record {key} from table {int(schema.table_id)}")

    def run_query(self, query: Optional[core_logic.DemoQuery] = None) -> core_logic.DemoQueryResult:
        result = core_logic.run_demo_query(self.store, query)
        print_query_result(result, self._out)
        self.action_log.record("Query executed")
        return result


def print_query_result(result: core_logic.DemoQueryResult, out: TextIO) -> None:
    query = result.query
    print(
        f"Category '{query.category_name}' ({query.age_limit}) in district "
        f"'{query.district}', {format_cell(query.start_date)}-{format_cell(query.end_date)}:",
        file=out,
    )
    print(f"  movements: {result.movement_count}", file=out)
    print(f"  packages:  {result.package_count}", file=out)
    print(f"  value:     {result.total_value}", file=out)


def _date_argument(raw: str) -> date:
    result = parse_date(raw)
    if not result.ok:
        raise argparse.ArgumentTypeError(result.error)
    return result.value


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="retail-cli",
        description="Manage retail records stored in an Excel workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.ini (searched upwards from the working directory by default).",
    )
    parser.add_argument("--data-file", type=Path, default=None, help="Workbook path (.xls/.xlsx); overrides config.")
    parser.add_argument("--log-file", type=Path, default=None, help="Action log path; overrides config.")
    parser.add_argument(
        "--allow-duplicate-keys",
        action="store_true",
        help="Accept records whose id already exists.",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    specs = [
        register_menu_command(subparsers),
        register_list_command(subparsers),
        register_delete_command(subparsers),
        register_query_command(subparsers),
        register_init_command(subparsers),
    ]
    for spec in specs:
        spec.register(subparsers)
    return build_command_table(specs)


def register_menu_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``menu``."""
    name = "menu"
    help_text = "Start the interactive menu."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_menu)


def register_list_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``list``."""
    name = "list"
    help_text = "Print every record of a table."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--table", type=int, required=True, help="Table id (1-4).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_list)


def register_delete_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete``."""
    name = "delete"
    help_text = "Delete a record by id."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--table", type=int, required=True, help="Table id (1-4).")
        parser.add_argument("--id", dest="record_id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete)


def register_query_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``query``."""
    name = "query"
    help_text = "Run the category sales report."
    defaults = core_logic.DemoQuery()

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--category", default=defaults.category_name)
        parser.add_argument("--age-limit", default=defaults.age_limit)
        parser.add_argument("--district", default=defaults.district)
        parser.add_argument("--start", type=_date_argument, default=defaults.start_date, help="DD.MM.YYYY")
        parser.add_argument("--end", type=_date_argument, default=defaults.end_date, help="DD.MM.YYYY")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_query)


def register_init_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``init``."""
    name = "init"
    help_text = "Create an empty workbook with all four tables."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--force", action="store_true", help="Overwrite an existing workbook.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name,
        help_text=help_text,
        register=registrar,
        execute=run_init,
        needs_store=False,
    )


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def dispatch_command(
    context: CliContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    spec = lookup_command(args, command_table)
    return spec.execute(context, args)


def lookup_command(args: argparse.Namespace, command_table: Mapping[str, CommandSpec]) -> CommandSpec:
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec


def resolve_settings(args: argparse.Namespace) -> data_manager.ConfigSettings:
    """Combine ``config.ini`` with command-line overrides.

    When ``--data-file`` is given without ``--config`` no config file is
    needed; otherwise the config is located and parsed first.
    """
    config_path = getattr(args, "config", None)
    data_file = getattr(args, "data_file", None)
    log_file = getattr(args, "log_file", None)

    if config_path is None and data_file is not None:
        settings = data_manager.ConfigSettings(
            data_file=Path(data_file),
            log_file=Path(data_manager.DEFAULT_LOG_FILE),
        )
    else:
        settings = data_manager.load_settings(config_path)

    if data_file is not None:
        settings = replace(settings, data_file=Path(data_file).expanduser().resolve())
    if log_file is not None:
        settings = replace(settings, log_file=Path(log_file).expanduser().resolve())
    if getattr(args, "allow_duplicate_keys", False):
        settings = replace(settings, reject_duplicate_keys=False)
    return settings


def run_menu(context: CliContext, args: argparse.Namespace) -> int:
    """Run the interactive menu until the user exits."""
    session = MenuSession(
        context.store,
        context.action_log,
        input_func=context.input_func,
        out=context.out,
    )
    session.run()
    return 0


def run_list(context: CliContext, args: argparse.Namespace) -> int:
    """Print all records of the requested table."""
    schema = context.store.get_table(args.table)
    print("\t".join(schema.columns), file=context.out)
    for record in context.store.list_rows(schema):
        print(format_record(schema, record), file=context.out)
    context.action_log.record(f"Viewed table {int(schema.table_id)}")
    return 0


def run_delete(context: CliContext, args: argparse.Namespace) -> int:
    """Delete one record by id."""
    schema = context.store.get_table(args.table)
    context.store.delete_row(schema, args.record_id)
    context.action_log.record(f"Deleted record {args.record_id} from table {int(schema.table_id)}")
    print(f"Deleted {args.record_id}.", file=context.out)
    return 0


def run_query(context: CliContext, args: argparse.Namespace) -> int:
    """Run the category sales report with optional parameter overrides."""
    query = core_logic.DemoQuery(
        category_name=args.category,
        age_limit=args.age_limit,
        district=args.district,
        start_date=args.start,
        end_date=args.end,
    )
    result = core_logic.run_demo_query(context.store, query)
    print_query_result(result, context.out)
    context.action_log.record("Query executed")
    return 0


def run_init(context: CliContext, args: argparse.Namespace) -> int:
    """Create the workbook named by the settings."""
    destination = data_manager.validate_workbook_path(context.settings.data_file)
    path = setup_excel.create_master_workbook(destination, overwrite=args.force)
    context.action_log.record(f"Created workbook {path}")
    print(f"Created workbook at '{path}'.", file=context.out)
    return 0


def handle_cli_error(error: Exception, action_log: Optional[ActionLog] = None) -> int:
    """Convert raised exceptions into exit codes, logging them on the way."""
    log.error("%s", error)
    if action_log is not None:
        action_log.record(f"Error: {error}")
    if isinstance(error, (ArgumentError, NotFoundError, PersistenceFailure)):
        return 2
    if isinstance(
        error,
        (ResourceUnavailableError, MalformedRowError, FileNotFoundError, FileExistsError, KeyError),
    ):
        return 3
    return 1


def main(
    argv: Sequence[str] | None = None,
    *,
    input_func: InputFunc = input,
    out: TextIO | None = None,
) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    out = out if out is not None else sys.stdout
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)

    action_log: Optional[ActionLog] = None
    try:
        settings = resolve_settings(args)
        action_log = ActionLog(settings.log_file)
        spec = lookup_command(args, command_table)
        if not spec.needs_store:
            context = CliContext(settings, action_log, None, out, input_func)
            return dispatch_command(context, args, command_table)

        with core_logic.open_store(
            settings.data_file,
            reject_duplicate_keys=settings.reject_duplicate_keys,
        ) as store:
            action_log.record(f"Opened workbook {settings.data_file}")
            context = CliContext(settings, action_log, store, out, input_func)
            return dispatch_command(context, args, command_table)
    except Exception as error:  # pragma: no cover
        print(f"Error: {error}", file=sys.stderr)
        return handle_cli_error(error, action_log)
    finally:
        if action_log is not None:
            action_log.close()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
