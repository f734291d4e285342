"""Site Harvester — background website crawler with resumable, polled jobs."""
