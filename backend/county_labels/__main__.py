"""Run the API with ``python -m county_labels``."""

import uvicorn

if __name__ == "__main__":
    uvicorn.run("county_labels.main:app", host="127.0.0.1", port=8000)
