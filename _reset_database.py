import shutil
from pathlib import Path

from app import create_app
from database import db
import store

app = create_app()

with app.app_context():
    db.drop_all()
    db.create_all()
    print("Databas rensad och återskapad!")

    # Bilagorna pekar på rader som inte finns längre
    uploads = Path(app.config['UPLOADS_DIR'])
    if uploads.exists():
        shutil.rmtree(uploads)
    uploads.mkdir(parents=True)

    # 1. PLATSER
    count = app.config['DEFAULT_PLACE_COUNT']
    store.set_place_count(count)
    for i in range(1, count + 1):
        store.upsert_workplace(f"place-{i}", f"Plats {i}")

    # 2. STANDARDLAYOUT (två kolumner)
    for i in range(count):
        store.upsert_box_position(f"place-{i + 1}", {
            "x": 20 + (i % 2) * 270,
            "y": 20 + (i // 2) * 140,
            "width": 250,
            "height": 120,
        })

    print(f"Databas uppdaterad med {count} platser!")
