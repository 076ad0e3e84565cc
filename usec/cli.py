import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.pretty import Pretty
from rich.table import Table

from . import __version__, dumps, loads, parse, tokenize
from .structures import USECError, is_identifier

console = Console()
err_console = Console(stderr=True)

def _read(file):
    with open(file, 'r', encoding='utf-8') as f:
        return f.read()

def _variables(pairs):
    variables = {}
    for pair in pairs:
        name, sep, text = pair.partition('=')
        if not sep or not is_identifier(name):
            raise click.BadParameter(f"expected NAME=VALUE, got {pair!r}", param_hint="'--var'")
        try:
            variables[name] = loads('!' + text)
        except USECError as e:
            raise click.BadParameter(f"{name}: {e}", param_hint="'--var'")
    return variables

def _fail(message):
    err_console.print(f"[bold red]Error:[/bold red] {escape(str(message))}")
    sys.exit(1)

def parse_options(command):
    """Options shared by every command that parses a document."""
    command = click.option('--debug', is_flag=True, help="Log tokenizer and parser traces.")(command)
    command = click.option('--var', 'pairs', multiple=True, metavar='NAME=VALUE',
                           help="Predeclare a variable; VALUE is USEC text.")(command)
    command = click.option('--keep-variables', is_flag=True,
                           help="Keep variable references instead of resolving them.")(command)
    command = click.option('--lenient', is_flag=True,
                           help="Collect every error instead of stopping at the first.")(command)
    return command

def _parse_file(file, lenient, keep_variables, pairs, debug):
    if debug:
        logging.basicConfig(level=logging.DEBUG, format="%(message)s",
                            handlers=[RichHandler(console=err_console)])
    source = _read(file)
    return parse(source, pedantic=not lenient, keep_variables=keep_variables,
                 variables=_variables(pairs), debug_tokens=debug, debug_parser=debug)

@click.group()
@click.version_option(version=__version__, prog_name="usec")
def cli():
    """USEC configuration format tools"""
    pass

@cli.command()
@click.argument('file', type=click.Path(exists=True))
@parse_options
def check(file, lenient, keep_variables, pairs, debug):
    """Check syntax of a USEC file"""
    try:
        result = _parse_file(file, lenient, keep_variables, pairs, debug)
    except USECError as e:
        _fail(e)

    if not result.ok:
        err_console.print("[bold red]Errors found:[/bold red]")
        for error in result.lexical_errors + result.errors:
            err_console.print(f"  {escape(str(error))}")
        sys.exit(1)
    console.print("[bold green]Syntax is valid![/bold green]")

@cli.command()
@click.argument('file', type=click.Path(exists=True))
def tokens(file):
    """Show tokens of a USEC file"""
    result = tokenize(_read(file), pedantic=False)

    table = Table(title="Tokens")
    table.add_column("Type", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Line", style="yellow")
    table.add_column("Column", style="yellow")
    for token in result.tokens:
        table.add_row(token.type.name, escape(repr(token.value)), str(token.line), str(token.col))
    console.print(table)

    if result.errors:
        for error in result.errors:
            err_console.print(f"[red]{escape(str(error))}[/red]")
        sys.exit(1)

@cli.command()
@click.argument('file', type=click.Path(exists=True))
@click.option('--readable/--compact', default=True, help="Output encoding.")
@click.option('--enable-variables', is_flag=True,
              help="Write '$name' keys and variable markers back as variables.")
@click.option('-o', '--output', type=click.Path(dir_okay=False, writable=True),
              help="Write to a file instead of stdout.")
@parse_options
def convert(file, readable, enable_variables, output, lenient, keep_variables, pairs, debug):
    """Re-encode a USEC file"""
    try:
        result = _parse_file(file, lenient, keep_variables, pairs, debug)
        if result.lexical_errors:
            _fail(result.lexical_errors[0])
        text = dumps(result.value, readable=readable, enable_variables=enable_variables)
    except USECError as e:
        _fail(e)

    if output:
        with open(output, 'w', encoding='utf-8') as f:
            f.write(text + '\n')
    else:
        click.echo(text)

@cli.command()
@click.argument('file', type=click.Path(exists=True))
@parse_options
def show(file, lenient, keep_variables, pairs, debug):
    """Show the value tree of a USEC file"""
    try:
        result = _parse_file(file, lenient, keep_variables, pairs, debug)
    except USECError as e:
        _fail(e)
    if result.lexical_errors:
        _fail(result.lexical_errors[0])

    console.print(Panel.fit(
        Pretty(result.value),
        title=f"[bold blue]{escape(file)}[/bold blue]",
        border_style="blue"
    ))

if __name__ == "__main__":
    cli()
