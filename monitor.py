#!/usr/bin/env python3
"""
Matrix AI - Initialization Monitor
Polls the API until the text classifier has finished warming up.
"""
import httpx
import os
import time
import sys

API_URL = os.environ.get("MATRIX_AI_URL", "http://localhost:8000") + "/initialization-status"
SPINNER = ['⠋', '⠙', '⠹', '⠸', '⠼', '⠴', '⠦', '⠧', '⠇', '⠏']

def get_status():
    try:
        response = httpx.get(API_URL, timeout=5.0)
        if response.status_code == 200:
            return response.json()
        return None
    except httpx.HTTPError:
        return None

def print_status(status_data, spinner_idx, elapsed):
    """Render one frame; returns True once the classifier is ready."""
    print("\033[2J\033[H")
    print("=" * 60)
    print("Matrix AI - Initialization Monitor")
    print("=" * 60)

    if not status_data:
        print(f"{SPINNER[spinner_idx]} Waiting for API server...")
        return False

    classifier = status_data.get("components", {}).get("classifier", {})
    classifier_status = classifier.get("status", "unknown")
    details = classifier.get("details", {})

    if classifier_status == "ready":
        print("✅ Classifier: Ready")
        if "vocabulary_size" in details:
            print(f"   {details['vocabulary_size']:,} tokens in vocabulary")
        print()
        print(f"🎉 Initialization complete! (took {elapsed} seconds)")
        return True

    if classifier_status == "failed":
        print("❌ Classifier: Failed")
        if "error" in details:
            print(f"   Error: {details['error']}")
        # Failed warmup is retried on the first /analyze call
        return True

    print(f"{SPINNER[spinner_idx]} Classifier: {classifier_status} ({elapsed}s)")
    return False

def main():
    print("Starting Matrix AI initialization monitor...")
    print("Press Ctrl+C to exit\n")

    spinner_idx = 0
    start_time = time.time()

    try:
        while True:
            elapsed = int(time.time() - start_time)
            if print_status(get_status(), spinner_idx, elapsed):
                break

            spinner_idx = (spinner_idx + 1) % len(SPINNER)
            time.sleep(0.5)

    except KeyboardInterrupt:
        print("\n\nMonitoring stopped.")
        sys.exit(0)

if __name__ == "__main__":
    main()
