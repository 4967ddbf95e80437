from django.core.management.base import BaseCommand

from apps.drones.models import Drone


class Command(BaseCommand):
    help = "Create a demo drone fleet (idempotent)"

    def add_arguments(self, parser):
        parser.add_argument("--count", type=int, default=5)
        parser.add_argument("--prefix", default="DRN")
        parser.add_argument("--lat", type=float, default=0.0)
        parser.add_argument("--lng", type=float, default=0.0)

    def handle(self, *args, **options):
        created = 0
        for i in range(1, options["count"] + 1):
            _, was_created = Drone.objects.get_or_create(
                drone_id=f"{options['prefix']}-{i:03d}",
                defaults={
                    "battery": 100,
                    "latitude": options["lat"],
                    "longitude": options["lng"],
                },
            )
            created += int(was_created)

        self.stdout.write(self.style.SUCCESS(f"{created} drones created, {options['count'] - created} already present"))
