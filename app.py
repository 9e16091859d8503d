from dotenv import load_dotenv
import logging
import os

load_dotenv()

from api.routes import create_app

logger = logging.getLogger(__name__)

app = create_app()

if __name__ == "__main__":
    port = int(os.getenv('PORT', '8000'))
    debug = os.getenv('FLASK_DEBUG', '').lower() in ('1', 'true')
    logger.info(f"Starting Scatterbrain API on port {port} (debug={debug})")
    # Streaming responses need a worker per open connection
    app.run(debug=debug, port=port, threaded=True)
