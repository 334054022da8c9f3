"""CLI entrypoint: Typer app definition and command registration"""

import typer

from adfmark.cli.commands import check_cmd, config_cmd, to_adf_cmd, to_md_cmd


app = typer.Typer(name="adfmark", no_args_is_help=True, help="Convert between ADF documents and Extended Markdown")

app.command(name="to-adf")(to_adf_cmd)
app.command(name="to-md")(to_md_cmd)
app.command(name="check")(check_cmd)
app.command(name="config")(config_cmd)
