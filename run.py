# run.py: single entrypoint
import click

from app import create_app
from app.services.status_sync import sync_schedule

app = create_app()


@app.cli.command("sync-status")
def sync_status():
    """Run one schedule sync pass (for cron)."""
    report = sync_schedule()
    click.echo(f"status sync: {report.total_writes} write(s) {report.to_dict()}")


if __name__ == "__main__":
    # Use debug=True locally only
    app.run(debug=True)
