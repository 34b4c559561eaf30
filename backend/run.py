import logging
import os

from dotenv import load_dotenv
load_dotenv()

from timecard_api import create_app

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

app = create_app()

if __name__ == "__main__":
    # Extraction runs sequentially inside one request; threads keep /api/usage responsive meanwhile
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", "5000")), debug=os.environ.get("FLASK_DEBUG") == "1", threaded=True)
