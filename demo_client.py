#!/usr/bin/env python3
"""
Demo script that walks a running inspector through scan, connect and read.
Start the server first, e.g. INSPECTOR_SIMULATION=1 python app.py
"""

import sys
import time

import requests

BASE_URL = "http://localhost:8081/api/inspector"


def run_demo(base_url: str = BASE_URL, scan_seconds: int = 6) -> bool:
    """Demo the inspector API"""
    print("🔍 BLE Inspector Demo")
    print("=" * 50)

    print("\n1. Starting scan...")
    response = requests.post(f"{base_url}/start")
    result = response.json()
    if response.status_code == 503:
        print(f"   ✗ Radio unavailable: {result['error']}")
        return False
    print(f"   ✓ {result.get('message', result.get('error'))}")

    print(f"\n2. Monitoring scan for {scan_seconds}s...")
    for i in range(0, scan_seconds, 2):
        time.sleep(2)
        status = requests.get(f"{base_url}/status").json()['status']
        print(f"   {i + 2}s: Devices={status['discovered_count']}")

    devices = requests.get(f"{base_url}/devices").json()['devices']
    if not devices:
        print("   No devices found")
        return True
    for device in devices:
        print(f"   - {device['name'] or 'Unnamed'} ({device['identity']}) RSSI: {device['rssi']} dBm")

    target = devices[0]['identity']
    print(f"\n3. Connecting to {target}...")
    result = requests.post(f"{base_url}/connect/{target}").json()
    print(f"   ✓ {result['message']}")

    print("\n4. Reading characteristics...")
    for _ in range(10):
        session = requests.get(f"{base_url}/session").json()['session']
        if session['state'] in ('reading_values', 'disconnected'):
            break
        time.sleep(1)
    print(f"   State: {session['state']}")
    for entry in session['characteristics']:
        print(f"   {entry['key']}: {entry['value']}")
    if session['failure_reason']:
        print(f"   ✗ {session['failure_reason']}")

    print("\n5. Disconnecting...")
    print(f"   ✓ {requests.post(f'{base_url}/disconnect').json()['message']}")
    requests.post(f"{base_url}/stop")

    print("\n✅ Demo completed!")
    return True


if __name__ == "__main__":
    try:
        sys.exit(0 if run_demo() else 1)
    except requests.exceptions.ConnectionError:
        print("❌ Cannot connect to the inspector. Make sure it's running:")
        print("   python app.py")
        sys.exit(1)
