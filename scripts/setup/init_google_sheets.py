#!/usr/bin/env python3
"""
Google Sheets 원장 초기화 스크립트

스프레드시트에 Rentals / Sales 시트(탭)를 생성하고 헤더를 설정합니다.
"""

import os
import sys
from pathlib import Path

# 프로젝트 루트 추가
PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import gspread
from google.oauth2.service_account import Credentials

from app.services.ledger_factory import decode_service_account, load_kiosk_config
from data_sources.google_sheets import RENTAL_HEADERS, SALES_HEADERS, SCOPES


SHEET_HEADERS = {
    "rentals": RENTAL_HEADERS,
    "sales": SALES_HEADERS,
}


def connect_sheets(sheets_config):
    """Google Sheets API 연결"""
    credentials_info = decode_service_account(os.environ.get('GOOGLE_SERVICE_ACCOUNT_BASE64', ''))
    if credentials_info:
        credentials = Credentials.from_service_account_info(credentials_info, scopes=SCOPES)
    else:
        credentials_path = PROJECT_ROOT / sheets_config.get("credentials_file", "config/google_credentials.json")
        if not credentials_path.exists():
            print(f"❌ 인증 파일이 없습니다: {credentials_path}")
            sys.exit(1)
        credentials = Credentials.from_service_account_file(str(credentials_path), scopes=SCOPES)

    return gspread.authorize(credentials)


def column_letter(index):
    """1 기반 열 번호 -> 열 문자 (A-Z)"""
    return chr(64 + index)


def init_sheets(client, spreadsheet_id, sheet_names):
    """시트 초기화"""
    try:
        spreadsheet = client.open_by_key(spreadsheet_id)
        print(f"✅ 스프레드시트 연결: {spreadsheet.title}")
    except gspread.exceptions.GSpreadException as e:
        print(f"❌ 스프레드시트 연결 실패: {e}")
        print("   서비스 계정에 편집 권한이 있는지 확인하세요.")
        sys.exit(1)

    existing_sheets = [ws.title for ws in spreadsheet.worksheets()]
    print(f"📋 기존 시트: {existing_sheets}")

    for key, headers in SHEET_HEADERS.items():
        sheet_name = sheet_names.get(key, key.capitalize())
        print(f"\n🔧 시트 처리: {sheet_name}")

        try:
            if sheet_name in existing_sheets:
                worksheet = spreadsheet.worksheet(sheet_name)
                print("   ✅ 기존 시트 사용")
            else:
                worksheet = spreadsheet.add_worksheet(
                    title=sheet_name,
                    rows=1000,
                    cols=len(headers)
                )
                print("   ✅ 새 시트 생성")

            first_row = worksheet.row_values(1)
            if first_row != headers:
                worksheet.update(range_name='A1', values=[headers])
                print(f"   ✅ 헤더 설정: {len(headers)}개 컬럼")

                worksheet.format(f'A1:{column_letter(len(headers))}1', {
                    'textFormat': {'bold': True},
                    'backgroundColor': {'red': 0.9, 'green': 0.9, 'blue': 0.9}
                })
                print("   ✅ 헤더 스타일 적용")
            else:
                print("   ✅ 헤더 이미 설정됨")

        except gspread.exceptions.GSpreadException as e:
            print(f"   ❌ 오류: {e}")

    print("\n✅ 초기화 완료!")
    print(f"📊 스프레드시트 URL: https://docs.google.com/spreadsheets/d/{spreadsheet_id}")


def main():
    print("=" * 50)
    print("🔧 Google Sheets 원장 초기화")
    print("=" * 50)

    config = load_kiosk_config()
    sheets_config = config.get("google_sheets", {})
    spreadsheet_id = os.environ.get('GOOGLE_SHEETS_SPREADSHEET_ID') or sheets_config.get("spreadsheet_id")
    if not spreadsheet_id:
        print("❌ 스프레드시트 ID 가 설정되지 않았습니다 (GOOGLE_SHEETS_SPREADSHEET_ID).")
        sys.exit(1)
    print(f"📁 스프레드시트 ID: {spreadsheet_id}")

    print("\n📡 Google Sheets API 연결 중...")
    client = connect_sheets(sheets_config)
    print("✅ 연결 성공")

    print("\n🚀 시트 초기화 시작...")
    init_sheets(client, spreadsheet_id, sheets_config.get("sheet_names", {}))


if __name__ == "__main__":
    main()
