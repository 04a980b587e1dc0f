"""
Flask CLI commands for database setup and stock maintenance.

Commands:
- flask init-db: Create all tables
- flask stock-receive: Receive stock for an IPN through the ledger
"""

import click
from mrp import database
from mrp.exceptions import MrpError


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create every table that does not exist yet."""
        database.create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('stock-receive')
    @click.option('--ipn', required=True, help='Part number to receive')
    @click.option('--qty', required=True, help='Quantity received')
    @click.option('--reference', default=None, help='PO or packing slip reference')
    def stock_receive(ipn, qty, reference):
        """Receive stock for a part (creates the inventory row if needed)."""
        from mrp.services.inventory_service import post_transaction

        session = database.get_session()
        try:
            item = post_transaction(session, {
                'ipn': ipn,
                'type': 'receive',
                'qty': qty,
                'reference': reference,
            })
            click.echo(click.style(f'Received {qty} x {ipn}', fg='green', bold=True))
            click.echo(f'   On hand: {item.qty_on_hand}')
            click.echo(f'   Reserved: {item.qty_reserved}')
        except MrpError as e:
            click.echo(click.style(f'Error: {e.message}', fg='red'))
            raise SystemExit(1)
        finally:
            session.remove()
